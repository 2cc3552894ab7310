from .blockstate import BlockState, BLOCK_NAMES, DECISION_BLOCKS, EQUALITY_MULTIPLIER_BLOCKS, SLACK_BLOCKS, \
    SLACK_MULTIPLIER_BLOCKS, PRIMAL_BLOCKS, DUAL_BLOCKS
from .domain import VoxelDomain
from .step import StepComputer, fraction_to_boundary
from .merit import MeritFunction, LineSearch
from .barrier import ConvergenceChecker, BarrierSchedule
from .watchdog import WatchdogDriver
