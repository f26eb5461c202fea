import pytest

from qahub.badges import assign_badges
from qahub.errors import ValidationError
from qahub.pagination import has_more, skip_amount


class TestPagination:
    def test_skip_amount_is_offset_of_page(self):
        assert skip_amount(1, 10) == 0
        assert skip_amount(3, 20) == 40

    @pytest.mark.parametrize('page, page_size', [(0, 10), (1, 0), (-2, 5)])
    def test_non_positive_values_are_rejected(self, page, page_size):
        with pytest.raises(ValidationError):
            skip_amount(page, page_size)

    def test_has_more_iff_total_exceeds_page_end(self):
        for total in range(0, 30):
            for page_size in (1, 3, 10):
                for page in (1, 2, 3, 4):
                    assert has_more(total, page, page_size) == (total > page * page_size)


class TestAssignBadges:
    def test_no_activity_earns_nothing(self):
        criteria = [{'type': t, 'count': 0} for t in
                    ('QUESTION_COUNT', 'ANSWER_COUNT', 'QUESTION_UPVOTES', 'ANSWER_UPVOTES', 'TOTAL_VIEWS')]
        assert assign_badges(criteria) == {'GOLD': 0, 'SILVER': 0, 'BRONZE': 0}

    def test_counts_every_tier_reached_per_criterion(self):
        criteria = [
            {'type': 'QUESTION_COUNT', 'count': 60},   # bronze, silver
            {'type': 'ANSWER_COUNT', 'count': 100},    # bronze, silver, gold
            {'type': 'TOTAL_VIEWS', 'count': 999},     # nothing
        ]
        assert assign_badges(criteria) == {'GOLD': 1, 'SILVER': 2, 'BRONZE': 2}

    def test_uses_given_thresholds(self):
        thresholds = {'QUESTION_COUNT': {'BRONZE': 1}}
        assert assign_badges([{'type': 'QUESTION_COUNT', 'count': 1}], thresholds)['BRONZE'] == 1

    def test_unknown_criterion_is_rejected(self):
        with pytest.raises(ValidationError):
            assign_badges([{'type': 'COMMENT_COUNT', 'count': 3}])
