'''
Downsample
----------
'''

from typing import Optional, Union

import pandas as pd  # type: ignore
from anndata import AnnData  # type: ignore

import downsampling.parameters as pr
import downsampling.utilities as ut

__all__ = [
    'downsample_cells',
]


@ut.logged()
@ut.timed_call()
@ut.expand_doc()
def downsample_cells(
    adata: AnnData,
    what: Union[str, ut.Matrix] = '__x__',
    *,
    proportion: ut.Vector,
    per_cell: bool = pr.downsample_per_cell,
    random_seed: int = pr.random_seed,
    inplace: bool = True,
) -> Optional[pd.DataFrame]:
    '''
    Downsample the values of ``what`` (default: {what}) data by some ``proportion``.

    Downsampling is an effective way to remove the effect of different sequencing depths of
    different samples (different total number of UMIs in different cells). Unlike normalization,
    the results are still integer counts, which preserves the sampling noise characteristics expected
    by the downstream analysis.

    **Input**

    Annotated ``adata``, where the observations are cells and the variables are genes, where
    ``what`` is a per-variable-per-observation matrix or the name of a per-variable-per-observation
    annotation containing such a matrix.

    **Returns**

    Variable-Observation (Gene-Cell) Annotations
        ``downsampled``
            The downsampled data, with the same shape, storage class and data type as the input.

    If ``inplace`` (default: {inplace}), this is written to the data, and the function returns
    ``None``. Otherwise this is returned as a pandas data frame (indexed by the cell and gene
    names).

    **Computation Parameters**

    1. If ``per_cell`` (default: {per_cell}), the ``proportion`` must contain one value per cell
       (either in the order of the observations, or as a pandas series indexed by the cell names),
       and each cell is independently downsampled to exactly ``round(proportion * total)`` UMIs.

    2. Otherwise, the ``proportion`` is a single value, and ``round(proportion * total)`` UMIs are
       sampled out of the total UMIs of all the cells.

    3. Use the ``random_seed`` (default: {random_seed}) to allow making this replicable.
    '''
    if per_cell and isinstance(proportion, pd.Series):
        proportion = proportion.reindex(adata.obs_names).values

    umis_per_cell_per_gene = ut.get_vo_proper(adata, what)

    # Each cell is a column of the transposed matrix.
    umis_per_gene_per_cell = umis_per_cell_per_gene.transpose()
    downsampled_per_gene_per_cell = ut.downsample_matrix(
        umis_per_gene_per_cell, proportion, per_column=per_cell, random_seed=random_seed
    )
    downsampled = downsampled_per_gene_per_cell.transpose()

    if inplace:
        ut.set_vo_data(adata, pr.downsampled_layer, downsampled)
        return None

    return ut.to_pandas_frame(downsampled, index=adata.obs_names, columns=adata.var_names)
