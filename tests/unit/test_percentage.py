from apps.worker.amc.percentage import calculate_percentage, format_percentage


class TestCalculatePercentage:
    def test_simple_ratio(self):
        assert calculate_percentage(4, 0, 1) == 25

    def test_full_pass(self):
        assert calculate_percentage(3, 0, 3) == 100

    def test_rounds_half_up(self):
        assert calculate_percentage(8, 0, 1) == 13  # 12.5
        assert calculate_percentage(200, 0, 1) == 1  # 0.5

    def test_rounds_down_below_half(self):
        assert calculate_percentage(3, 0, 1) == 33

    def test_zero_denominator(self):
        assert calculate_percentage(0, 0, 0) == 0

    def test_exclusions_reduce_eligible_count(self):
        assert calculate_percentage(10, 5, 5) == 100

    def test_exclusions_consume_everything(self):
        assert calculate_percentage(5, 5, 3) == 0
        assert calculate_percentage(2, 5, 1) == 0


def test_format_percentage():
    assert format_percentage(0) == "0%"
    assert format_percentage(67) == "67%"
