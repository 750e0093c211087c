"""
最佳折扣选择测试
"""

from decimal import Decimal
from datetime import timedelta

from promo_engine.services.discount_selector import pick_best_rule, select_best_discount
from conftest import NOW


class TestSelectBestDiscount:
    """最佳折扣选择测试类"""

    def test_single_percentage_rule(self, make_rule):
        """单条20%规则"""
        selection = select_best_discount(Decimal("100"), [make_rule("pct", value="20")])

        assert selection.discount_amount == Decimal("20.00")
        assert selection.final_price == Decimal("80.00")
        assert selection.winning_rule.id == "pct"

    def test_larger_discount_wins(self, make_rule):
        """固定减30优于打8折"""
        candidates = [
            make_rule("pct", discount_type="percentage", value="20"),
            make_rule("fixed", discount_type="fixed_amount", value="30")
        ]
        selection = select_best_discount(Decimal("100"), candidates)

        assert selection.winning_rule.id == "fixed"
        assert selection.discount_amount == Decimal("30.00")
        assert selection.final_price == Decimal("70.00")

    def test_discounts_are_never_combined(self, make_rule):
        """多个候选只取其一"""
        candidates = [
            make_rule("a", discount_type="percentage", value="20"),
            make_rule("b", discount_type="fixed_amount", value="30"),
            make_rule("c", discount_type="fixed_amount", value="5")
        ]
        selection = select_best_discount(Decimal("100"), candidates)

        assert selection.discount_amount == max(Decimal("20"), Decimal("30"), Decimal("5"))
        assert selection.final_price + selection.discount_amount == Decimal("100")

    def test_capped_percentage(self, make_rule):
        """上限为10的5折规则"""
        selection = select_best_discount(
            Decimal("100"),
            [make_rule("capped", value="50", maximum_discount_amount="10")]
        )

        assert selection.discount_amount == Decimal("10.00")
        assert selection.final_price == Decimal("90.00")

    def test_tie_goes_to_most_recently_created(self, make_rule):
        """金额相同时创建时间晚者胜，与候选顺序无关"""
        older = make_rule("older", discount_type="fixed_amount", value="10", created_at=NOW - timedelta(days=5))
        newer = make_rule("newer", discount_type="fixed_amount", value="10", created_at=NOW - timedelta(days=1))

        for candidates in ([older, newer], [newer, older]):
            for _ in range(3):
                assert select_best_discount(Decimal("50"), candidates).winning_rule.id == "newer"

    def test_tie_with_same_creation_time_uses_id(self, make_rule):
        """创建时间也相同时按ID确定"""
        created = NOW - timedelta(days=3)
        first = make_rule("rule_a", discount_type="fixed_amount", value="10", created_at=created)
        second = make_rule("rule_b", discount_type="fixed_amount", value="10", created_at=created)

        assert select_best_discount(Decimal("50"), [second, first]).winning_rule.id == "rule_b"
        assert select_best_discount(Decimal("50"), [first, second]).winning_rule.id == "rule_b"

    def test_zero_amount_candidates_are_discarded(self, make_rule):
        """免运费等0金额规则不会成为赢家"""
        selection = select_best_discount(
            Decimal("100"),
            [make_rule("ship", discount_type="free_shipping", value=None)]
        )

        assert selection.winning_rule is None
        assert selection.discount_amount == Decimal("0")
        assert selection.final_price == Decimal("100")

    def test_no_candidates(self):
        """没有候选时原价"""
        selection = select_best_discount(Decimal("19.99"), [])

        assert selection.winning_rule is None
        assert selection.final_price == Decimal("19.99")

    def test_final_price_never_negative(self, make_rule):
        """固定金额大于价格时折后为0"""
        selection = select_best_discount(
            Decimal("8"),
            [make_rule("big", discount_type="fixed_amount", value="25")]
        )

        assert selection.final_price == Decimal("0")
        assert selection.discount_amount == Decimal("8")


def test_pick_best_rule_returns_amount_and_rule(make_rule):
    amount, rule = pick_best_rule(Decimal("200"), [make_rule("pct", value="15")])
    assert amount == Decimal("30.00")
    assert rule.id == "pct"


def test_pick_best_rule_empty():
    assert pick_best_rule(Decimal("200"), []) == (Decimal("0"), None)
