'''
Reads
-----
'''

from typing import Tuple

import numpy as np
import pandas as pd  # type: ignore
import scipy.sparse as sp  # type: ignore
from anndata import AnnData  # type: ignore

import downsampling.parameters as pr
import downsampling.utilities as ut

__all__ = [
    'downsample_reads',
]


@ut.logged()
@ut.timed_call()
@ut.expand_doc()
def downsample_reads(
    molecules: pd.DataFrame,
    proportion: ut.Vector,
    *,
    per_cell: bool = pr.downsample_per_cell,
    cell_column: str = pr.molecules_cell_column,
    gene_column: str = pr.molecules_gene_column,
    reads_column: str = pr.molecules_reads_column,
    random_seed: int = pr.random_seed,
) -> AnnData:
    '''
    Downsample the sequencing reads of a table of ``molecules``, and count the molecules which still
    have any reads.

    This simulates sequencing the same library to a lower depth. Downsampling the reads (rather than
    the UMIs) is the more faithful simulation, since a molecule is lost only if all of its reads were
    lost, so highly amplified molecules are less likely to disappear.

    **Input**

    A pandas data frame with one row per molecule, with the ``cell_column`` (default:
    {cell_column}) containing the cell (barcode) of the molecule, the ``gene_column`` (default:
    {gene_column}) containing its gene, and the ``reads_column`` (default: {reads_column}) containing
    its number of reads.

    **Returns**

    Annotated data where the observations are the cells and the variables are the genes (sorted by
    their names, including cells and genes that lost all their molecules), where ``X`` is a CSR
    matrix counting the molecules that have at least one read left after the downsampling.

    Observation (Cell) Annotations
        ``downsampled_reads``
            The total number of reads left in each cell.

    **Computation Parameters**

    1. Group the molecules by their cell, so the reads of each cell form a contiguous run.

    2. If ``per_cell`` (default: {per_cell}), the ``proportion`` must contain one value per cell
       (either in the order of the sorted cell names, or as a pandas series indexed by the cell
       names), and each cell is independently downsampled to exactly ``round(proportion * total)``
       reads. Otherwise, the ``proportion`` is a single value, and ``round(proportion * total)``
       reads are sampled out of the total reads of all the molecules.

    3. Count the molecules of each cell and gene which still have any reads. Use the ``random_seed``
       (default: {random_seed}) to allow making this replicable.
    '''
    for column in (cell_column, gene_column, reads_column):
        if column not in molecules.columns:
            raise KeyError(f'missing molecules column: {column}')

    cell_codes, cell_names = _factorize(molecules[cell_column])
    gene_codes, gene_names = _factorize(molecules[gene_column])
    cells_count = len(cell_names)
    genes_count = len(gene_names)

    if per_cell and isinstance(proportion, pd.Series):
        proportion = proportion.reindex(cell_names).values

    order = np.argsort(cell_codes, kind='stable')
    reads_per_cell_molecule = molecules[reads_column].values[order]
    molecules_per_cell = np.bincount(cell_codes, minlength=cells_count)

    downsampled_reads = ut.downsample_runs(
        molecules_per_cell, reads_per_cell_molecule, proportion, per_run=per_cell, random_seed=random_seed
    )

    kept_mask = downsampled_reads > 0
    kept_count = int(np.sum(kept_mask))
    sorted_cell_codes = cell_codes[order]

    with ut.timed_step('.count'):
        with ut.log_step(
            '- count molecules',
            kept_count,
            formatter=lambda kept_count: ut.ratio_description(len(kept_mask), 'molecule', kept_count, 'kept'),
        ):
            kept_molecules = sp.coo_matrix(
                (
                    np.ones(kept_count, dtype='int32'),
                    (sorted_cell_codes[kept_mask], gene_codes[order][kept_mask]),
                ),
                shape=(cells_count, genes_count),
            ).tocsr()
            kept_molecules.sum_duplicates()
            kept_molecules.sort_indices()
            ut.log_calc('genes with molecules', np.sum(kept_molecules.getnnz(axis=0) > 0))

    reads_per_cell = np.bincount(sorted_cell_codes, weights=downsampled_reads, minlength=cells_count)

    adata = AnnData(
        obs=pd.DataFrame(index=pd.Index(cell_names.astype(str), name=cell_column)),
        var=pd.DataFrame(index=pd.Index(gene_names.astype(str), name=gene_column)),
    )
    ut.set_name(adata, 'downsampled')
    ut.set_vo_data(adata, '__x__', kept_molecules)
    adata.obs['downsampled_reads'] = reads_per_cell.astype('int64')
    return adata


def _factorize(values: pd.Series) -> Tuple[ut.NumpyVector, pd.Index]:
    codes, names = pd.factorize(values, sort=True)
    if np.any(codes < 0):
        raise ValueError(f'missing values in the molecules column: {values.name}')
    return codes, names
