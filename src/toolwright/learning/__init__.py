"""Pattern mining and tool generation.

Mining reads recent successful executions, the promoter stores and merges
the candidates, and the generator turns strong patterns into tools.
"""

from toolwright.learning.generator import ArtifactGenerator
from toolwright.learning.miner import PatternCandidate, PatternMiner
from toolwright.learning.normalize import ValueShape, classify, sequence_signature
from toolwright.learning.promoter import PatternPromoter

__all__ = [
    "ArtifactGenerator",
    "PatternCandidate",
    "PatternMiner",
    "PatternPromoter",
    "ValueShape",
    "classify",
    "sequence_signature",
]
