"""
spatial - Spatial analysis for pointgrid

grid : Grid discretization of point patterns
    Builds a boundary-clipped grid with stable cell ids, counts events per
    cell and time slice, and stacks the counts into the long table used by
    grid-approximated Poisson / log-Gaussian Cox process regressions.

point : First-order summaries on the grid
    Quadrat intensity, quadrat CSR test and kernel intensity.

shared : Utilities shared across both

Usage
-----
>>> import pointgrid as pg
>>>
>>> indexer = pg.GridIndexer(boundary, resolution=1000)
>>> table = indexer.run(events)
>>> pg.spatial.point.quadrat_test(table)
"""

from . import grid
from . import point
from . import shared

__all__ = [
    'grid',
    'point',
    'shared',
]
