'''
Annotation
----------

The tools operate on ``AnnData`` objects, where the observations (rows) are cells and the variables
(columns) are genes. For a uniform interface, we pretend the ``X`` member is a
per-variable-per-observation annotation with the special name ``__x__``, so the tools can take either
the name of a layer or ``__x__`` (the default) to operate on ``X``, or an explicit matrix.

Using these accessors (rather than directly accessing the ``AnnData`` members) also logs getting the
input data and setting the final results (see :py:mod:`downsampling.utilities.logging`).
'''

from typing import Optional, Union

from anndata import AnnData  # type: ignore

import downsampling.utilities.logging as utl
import downsampling.utilities.typing as utt

__all__ = [
    'set_name',
    'get_name',
    'get_vo_proper',
    'set_vo_data',
]


def set_name(adata: AnnData, name: Optional[str]) -> None:
    '''
    Set the ``name`` of the data (for log messages).

    If the name starts with ``.`` it is appended to the current name, if any.
    '''
    if name is None:
        adata.uns.pop('__name__', None)
        return

    if name[0] == '.':
        old_name = get_name(adata)
        name = name[1:] if old_name is None else old_name + name
    adata.uns['__name__'] = name


def get_name(adata: AnnData, default: Optional[str] = None) -> Optional[str]:
    '''
    Return the name of the data (for log messages), if any.

    If no name was set, returns the ``default``.
    '''
    return adata.uns.get('__name__', default)


def get_vo_proper(adata: AnnData, name: Union[str, utt.Matrix] = '__x__') -> utt.ProperMatrix:
    '''
    Get per-variable-per-observation (per-gene-per-cell) data as a
    :py:const:`downsampling.utilities.typing.ProperMatrix`.

    If ``name`` is a string, it is the name of a layer to fetch (or ``__x__`` for the ``X`` member).
    Otherwise, it should be some matrix of data of the appropriate shape.
    '''
    if isinstance(name, str):
        if name == '__x__':
            data = adata.X
        elif name in adata.layers:
            data = adata.layers[name]
        else:
            raise _unknown_data(adata, name)
    else:
        data = name

    proper = utt.to_proper_matrix(data, default_layout='row_major')
    assert proper.shape == adata.shape, f'data shape: {proper.shape} is not annotated data shape: {adata.shape}'
    utl.log_get(adata, name, proper)
    return proper


def set_vo_data(adata: AnnData, name: str, data: utt.ProperMatrix) -> None:
    '''
    Set per-variable-per-observation (per-gene-per-cell) data.

    The data is frozen to protect it against accidental modification.
    '''
    assert data.shape == adata.shape
    utl.log_set(adata, name, data)

    if not utt.frozen(data):
        utt.freeze(data)

    if name == '__x__':
        adata.X = data
    else:
        adata.layers[name] = data


def _unknown_data(adata: AnnData, name: str) -> KeyError:
    data_name = get_name(adata)
    if data_name is None:
        return KeyError(f'unknown per-variable-per-observation data name: {name}')
    return KeyError(f'unknown per-variable-per-observation data: {data_name} name: {name}')
