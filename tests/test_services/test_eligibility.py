"""
适用性判断测试
"""

import pytest

from wonderstars.services.eligibility import eligible_unit_count, is_eligible


class TestIsEligible:

    def test_no_restriction(self, make_voucher, make_item):
        assert is_eligible(make_item(), make_voucher()) is True

    def test_inactive_voucher_never_eligible(self, make_voucher, make_item):
        assert is_eligible(make_item(), make_voucher(is_active=False)) is False

    @pytest.mark.parametrize("restriction,field,value,item_kwargs", [
        ("by_product", "eligible_product_ids", ["p1"], {}),
        ("by_category", "eligible_category_ids", ["c1"], {"category_id": "c1"}),
        ("by_subcategory", "eligible_subcategory_ids", ["s1"], {"subcategory_id": "s1"}),
    ])
    def test_restriction_lists(self, make_voucher, make_item, restriction, field, value, item_kwargs):
        voucher = make_voucher(restriction_type=restriction, **{field: value})

        assert is_eligible(make_item("p1", **item_kwargs), voucher) is True
        assert is_eligible(make_item("p9"), voucher) is False

    def test_empty_restriction_list_fails_closed(self, make_voucher, make_item):
        voucher = make_voucher(restriction_type="by_category", eligible_category_ids=[])
        assert is_eligible(make_item(category_id="c1"), voucher) is False

    def test_special_discount_uses_product_flag(self, make_voucher, make_item):
        voucher = make_voucher(restriction_type="special_discount")

        assert is_eligible(make_item(special_discount=True), voucher) is True
        assert is_eligible(make_item(special_discount=False), voucher) is False
        assert is_eligible(make_item(), voucher) is False

    def test_eligible_unit_count(self, make_voucher, make_item):
        voucher = make_voucher(restriction_type="by_product", eligible_product_ids=["p1"])
        cart = [make_item("p1", quantity=3), make_item("p2", quantity=4)]

        assert eligible_unit_count(cart, voucher) == 3
