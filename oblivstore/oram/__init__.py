from oblivstore.oram.async_oram import AsyncPathOram
from oblivstore.oram.eviction import evict_path
from oblivstore.oram.path_oram import DELETE, READ, WRITE, PathOram
from oblivstore.oram.position_map import PositionMap
from oblivstore.oram.stash import Stash
from oblivstore.oram.tree_base_oram import OramStats, TreeBaseOram
