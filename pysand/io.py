"""Output of optimization results: Paraview files, iteration logs, plots, and STL geometry"""
import os
import warnings
from pathlib import Path
import numpy as np
import matplotlib.pyplot as plt

from .common.blockstate import BlockState, BLOCK_NAMES
from .common.domain import VoxelDomain


class WriteToVTI:
    """Writes the blocks of accepted iterates to Paraview VTI files

    See also: :attr:`VoxelDomain.write_to_vti()`

    Element blocks (e.g. densities) are written as cell-data, nodal blocks (displacements and their multipliers) as
    point-data.

    Args:
        domain: The domain layout
        saveto: Location to save the VTI file, the iteration number is added as suffix ``.0000``

    Keyword Args:
        blocks (optional): Names of the blocks to write (default is all blocks)
        overwrite (optional): Overwrite the VTI file for each iteration
        scale (optional): Scaling factor for the domain
        interval (optional): Interval at which to write the VTI file, defaults to 1 (every iteration)
    """

    def __init__(self, domain: VoxelDomain, saveto: str, blocks=None, overwrite: bool = False, scale=1.0, interval=1):
        self.domain = domain
        self.saveto = saveto
        Path(saveto).parent.mkdir(parents=True, exist_ok=True)
        self.blocks = BLOCK_NAMES if blocks is None else tuple(blocks)
        self.iter = 0
        self.scale = scale
        self.overwrite = overwrite
        self.interval = interval

    def filename(self, iteration: int):
        pth = os.path.splitext(self.saveto)
        if self.overwrite:
            return pth[0] + pth[1]
        return pth[0] + ".{0:04d}".format(iteration) + pth[1]

    def __call__(self, state: BlockState, iteration: int = None):
        if iteration is None:
            iteration = self.iter
        self.iter += 1
        if (self.iter - 1) % self.interval != 0:
            return
        data = {name: state[name] for name in self.blocks}
        self.domain.write_to_vti(data, filename=self.filename(iteration), scale=self.scale)


class ScalarToFile:
    """Writes iteration data to a log file

    Input is a dictionary of scalar values (e.g. an entry of :attr:`WatchdogDriver.history`), of which the keys are
    written as header in the first call.

    Args:
        saveto: Location to save the log file, supports .txt or .csv
        fmt (optional): Value format (e.g. 'e', 'f', '.3e', '.5g', '.3f')
        separator (optional): Value separator, .csv files will automatically use a comma
    """

    def __init__(self, saveto: str, fmt: str = ".10e", separator: str = "\t"):
        self.saveto = saveto
        Path(saveto).parent.mkdir(parents=True, exist_ok=True)
        self.iter = 0

        # Test the format
        (3.14).__format__(fmt)
        self.format = fmt

        self.separator = "," if ".csv" in self.saveto else separator
        self.keys = None

    def _format(self, value):
        if isinstance(value, str):
            return value
        if isinstance(value, (int, np.integer)):
            return value.__format__("d")
        return float(value).__format__(self.format)

    def __call__(self, values: dict):
        if self.keys is None:
            self.keys = list(values.keys())
            with open(self.saveto, "w+") as f:
                f.write(self.separator.join(self.keys))
                f.write("\n")

        missing = set(self.keys) - set(values.keys())
        if len(missing) > 0:
            raise KeyError(f"Missing values for {sorted(missing)}")

        with open(self.saveto, "a+") as f:
            f.write(self.separator.join(self._format(values[k]) for k in self.keys))
            f.write("\n")

        self.iter += 1


class PlotDensity:
    """Plots the densities of a 2D domain in greyscale, optionally on the deformed mesh

    Args:
        domain: The domain layout

    Keyword Args:
        saveto (str): Save images of each iteration to the specified location. (default = ``None``)
        overwrite (bool): Overwrite saved image every time the figure is updated, else suffix ``_0000`` is added to the
          filename (default = ``False``)
        show (bool): Show the figure on the screen
        block (str): Name of the element block to plot
        deformation_scale (float): Scaling of the displacements; the undeformed mesh is plotted when zero
    """

    def __init__(self, domain: VoxelDomain, saveto=None, overwrite=False, show=False, block="density",
                 deformation_scale=0.0):
        if domain.dim != 2:
            raise NotImplementedError("Only 2D plots are implemented")
        self.domain = domain
        self.fig = None
        self.patches = None
        if saveto is not None:
            self.saveloc, self.saveext = os.path.splitext(saveto)
            Path(saveto).parent.mkdir(parents=True, exist_ok=True)
        else:
            self.saveloc, self.saveext = None, None
        self.overwrite = overwrite
        self.show = show
        self.block = block
        self.deformation_scale = deformation_scale
        self.iter = 0

    def __call__(self, state: BlockState, iteration: int = None):
        if iteration is None:
            iteration = self.iter
        x = np.clip(state[self.block], 0, 1)
        u = self.deformation_scale * state["displacement"] if self.deformation_scale != 0 else None
        if self.fig is None:
            self.fig, ax = plt.subplots()
            self.patches = self.domain.plot(ax, deformation=u, scaling=x)
            ax.set(xlabel="x", ylabel="y")
        else:
            self.domain.update_plot(self.patches, deformation=u, scaling=x)
        self.fig.axes[0].set_title(f"{self.block}, Iteration {iteration}")

        if self.iter == 0 and self.show:
            plt.show(block=False)
        self.fig.canvas.draw()
        self.fig.canvas.flush_events()

        if self.saveloc is not None:
            if self.overwrite:
                filen = "{0:s}{1:s}".format(self.saveloc, self.saveext)
            else:
                filen = "{0:s}_{1:04d}{2:s}".format(self.saveloc, iteration, self.saveext)
            self.fig.savefig(filen)
        self.iter += 1

    def close(self):
        if self.fig is not None:
            plt.close(self.fig)
            self.fig = None


def _write_facet(file, a, b, c, normal):
    """Write one triangle, ordering the vertices counter-clockwise around the outward normal"""
    if np.dot(np.cross(b - a, c - a), normal) < 0:
        b, c = c, b
    file.write("   facet normal {0:e} {1:e} {2:e}\n".format(*normal))
    file.write("      outer loop\n")
    for v in (a, b, c):
        file.write("         vertex {0:e} {1:e} {2:e}\n".format(*v))
    file.write("      endloop\n")
    file.write("   endfacet\n")


def write_stl(domain: VoxelDomain, density: np.ndarray, filename: str = "design.stl", height: float = 0.25,
              threshold: float = 0.5, name: str = "design"):
    """Write the solid part of a 2D design to an ASCII STL file by extruding it in z-direction

    Every element with a density above the threshold becomes a box. Only the faces that bound the solid are written:
    the bottom and top of every solid element, and the side walls on the domain boundary or next to a void element.

    Args:
        domain: The 2D domain
        density: Element densities of size ``(nel, )``
        filename: The output file
        height: Extrusion height
        threshold: Density above which an element is considered solid
        name: Name of the solid in the file

    Returns:
        Number of triangles written
    """
    if domain.dim != 2:
        raise NotImplementedError("STL export is only implemented for 2D domains")
    density = np.asarray(density).ravel()
    if density.size != domain.nel:
        raise ValueError(f"Density should be of size {domain.nel}, got {density.size}")
    Path(filename).parent.mkdir(parents=True, exist_ok=True)

    solid = (density > threshold).reshape((domain.nely, domain.nelx))  # Indexed [j, i]
    if not np.any(solid):
        warnings.warn(f"No element has a density above {threshold}. Writing empty solid to {filename}")

    # Local node pairs of each side wall, and the neighbor offset (di, dj) of the element sharing it
    sides = [((0, 2), (-1, 0)), ((1, 3), (1, 0)), ((0, 1), (0, -1)), ((2, 3), (0, 1))]
    up, down = np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, -1.0])
    n_triangles = 0
    with open(filename, "w") as file:
        file.write(f"solid {name}\n")
        for el in np.flatnonzero(solid.ravel()):
            i, j = domain.get_elem_indices(el)
            xy = domain.get_node_position(domain.conn[el]).T
            bottom = np.hstack([xy, np.zeros((4, 1))])
            top = np.hstack([xy, np.full((4, 1), height)])

            _write_facet(file, bottom[0], bottom[2], bottom[1], down)
            _write_facet(file, bottom[1], bottom[2], bottom[3], down)
            _write_facet(file, top[0], top[1], top[2], up)
            _write_facet(file, top[1], top[3], top[2], up)
            n_triangles += 4

            for (a, b), (di, dj) in sides:
                ni, nj = i + di, j + dj
                if 0 <= ni < domain.nelx and 0 <= nj < domain.nely and solid[nj, ni]:
                    continue
                normal = np.array([di, dj, 0.0])
                _write_facet(file, bottom[a], bottom[b], top[b], normal)
                _write_facet(file, bottom[a], top[b], top[a], normal)
                n_triangles += 2
        file.write(f"endsolid {name}\n")
    return n_triangles
