"""
Tests for the level table
"""
import pytest

from progress_service.logic.levels import LEVELS, level_for, level_progress, level_rank


class TestLevelFor:

    def test_zero_points_is_novizio(self):
        assert level_for(0) == "Novizio"

    @pytest.mark.parametrize("points,expected", [
        (499, "Novizio"),
        (500, "Apprendista"),
        (1499, "Apprendista"),
        (1500, "Lettore"),
        (3000, "Esperto"),
        (5999, "Esperto"),
        (6000, "Maestro"),
        (1_000_000, "Maestro"),
    ])
    def test_thresholds(self, points, expected):
        assert level_for(points) == expected

    def test_negative_points_clamp_to_first_level(self):
        assert level_for(-50) == "Novizio"

    def test_monotonic(self):
        """Level rank never decreases as points grow"""
        ranks = [level_rank(level_for(p)) for p in range(0, 7000, 50)]
        assert ranks == sorted(ranks)

    def test_table_is_ascending(self):
        thresholds = [t for t, _ in LEVELS]
        assert thresholds == sorted(thresholds)
        assert thresholds[0] == 0


class TestLevelRank:

    def test_rank_follows_table_order(self):
        assert level_rank("Novizio") < level_rank("Apprendista") < level_rank("Maestro")

    def test_unknown_label(self):
        with pytest.raises(ValueError):
            level_rank("Principiante")


class TestLevelProgress:

    def test_points_to_next_level(self):
        progress = level_progress(120)
        assert progress == {
            'current_level': "Novizio",
            'next_level': "Apprendista",
            'next_level_at': 500,
            'points_to_next_level': 380,
        }

    def test_exactly_on_threshold(self):
        progress = level_progress(1500)
        assert progress['current_level'] == "Lettore"
        assert progress['points_to_next_level'] == 1500

    def test_top_level_has_no_next(self):
        progress = level_progress(7200)
        assert progress['current_level'] == "Maestro"
        assert progress['next_level'] is None
        assert progress['next_level_at'] is None
        assert progress['points_to_next_level'] is None
