__version__ = "1.0.0"

# Imports from common
from .common.blockstate import BlockState, BLOCK_NAMES, DECISION_BLOCKS, EQUALITY_MULTIPLIER_BLOCKS, SLACK_BLOCKS, \
    SLACK_MULTIPLIER_BLOCKS
from .common.domain import VoxelDomain
from .common.step import StepComputer, fraction_to_boundary
from .common.merit import MeritFunction, LineSearch
from .common.barrier import ConvergenceChecker, BarrierSchedule
from .common.watchdog import WatchdogDriver

# Import solvers
from . import solvers

# Finite element problem definition
from .assembly import AssembleStiffness, get_B, get_D, element_stiffness, assemble_face_load
from .filter import density_filter_matrix
from .problem import Problem, SANDElasticity, traction_load

# Output
from .io import WriteToVTI, ScalarToFile, PlotDensity, write_stl

# Further helper routines
from .routines import finite_difference, make_bridge, minimize_sand

__all__ = [
    "finite_difference",
    "make_bridge",
    "minimize_sand",
    # Common
    "BlockState",
    "BLOCK_NAMES",
    "DECISION_BLOCKS",
    "EQUALITY_MULTIPLIER_BLOCKS",
    "SLACK_BLOCKS",
    "SLACK_MULTIPLIER_BLOCKS",
    "VoxelDomain",
    "StepComputer",
    "fraction_to_boundary",
    "MeritFunction",
    "LineSearch",
    "ConvergenceChecker",
    "BarrierSchedule",
    "WatchdogDriver",
    "solvers",
    # Problem
    "AssembleStiffness",
    "get_B",
    "get_D",
    "element_stiffness",
    "assemble_face_load",
    "density_filter_matrix",
    "Problem",
    "SANDElasticity",
    "traction_load",
    # Output
    "WriteToVTI",
    "ScalarToFile",
    "PlotDensity",
    "write_stl",
]
