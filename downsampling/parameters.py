'''
Defaults
--------
'''

#: The default random seed. Zero means a fresh random stream for each operation (not reproducible);
#: any other value makes the operation replicable. See
#: :py:func:`downsampling.utilities.computation.downsample_matrix`,
#: :py:func:`downsampling.utilities.computation.downsample_runs`,
#: :py:func:`downsampling.tools.downsample.downsample_cells`,
#: and
#: :py:func:`downsampling.tools.reads.downsample_reads`.
random_seed: int = 0

#: Whether to downsample each cell using its own proportion (by default, a single proportion is
#: applied to the total of all the cells). See
#: :py:func:`downsampling.tools.downsample.downsample_cells`
#: and
#: :py:func:`downsampling.tools.reads.downsample_reads`.
downsample_per_cell: bool = False

#: The name of the layer to store the downsampled counts in. See
#: :py:func:`downsampling.tools.downsample.downsample_cells`.
downsampled_layer: str = 'downsampled'

#: The default names of the columns of a molecules table. See
#: :py:func:`downsampling.tools.reads.downsample_reads`.
molecules_cell_column: str = 'cell'

#: See :py:const:`molecules_cell_column`.
molecules_gene_column: str = 'gene'

#: See :py:const:`molecules_cell_column`.
molecules_reads_column: str = 'reads'
