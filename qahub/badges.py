from .config import BADGE_CRITERIA
from .errors import ValidationError

BADGE_TIERS = ('GOLD', 'SILVER', 'BRONZE')


def assign_badges(criteria, thresholds=None):
    """Count, per tier, how many criteria reached that tier's threshold.

    criteria is a list of {'type': <criterion type>, 'count': <int>} and
    thresholds maps criterion type -> {tier: minimum count}.
    """
    thresholds = thresholds or BADGE_CRITERIA
    badge_counts = {tier: 0 for tier in BADGE_TIERS}
    for item in criteria:
        levels = thresholds.get(item['type'])
        if levels is None:
            raise ValidationError({'type': [f"Unknown badge criterion '{item['type']}'."]})
        for tier, minimum in levels.items():
            if item['count'] >= minimum:
                badge_counts[tier] = badge_counts.get(tier, 0) + 1
    return badge_counts
