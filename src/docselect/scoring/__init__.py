"""Document relevance scoring."""

from docselect.scoring.models import ScoringResult, SubScores, TagAffinity
from docselect.scoring.scorer import DocumentScorer, priority_value

__all__ = ["DocumentScorer", "ScoringResult", "SubScores", "TagAffinity", "priority_value"]
