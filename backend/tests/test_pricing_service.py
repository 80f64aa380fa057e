from backoffice.services.pricing_service import (
    PriceTier,
    calculate_price,
    infer_pricing_mode,
    normalize_name,
)


COMPLAINT_TIERS = [
    PriceTier("common", 1, 10, 40),
    PriceTier("common", 11, None, 15),
]

DELAY_TIERS = [
    PriceTier("common", 1, 5, 100),
    PriceTier("common", 6, None, 80),
    PriceTier("package_sale", 1, None, 50),
]


class TestProgressive:
    def test_bracketed_subtotal(self):
        quote = calculate_price(15, COMPLAINT_TIERS, pricing_mode="progressive")
        assert quote.subtotal_cents == 475
        assert quote.warning is None

    def test_within_first_bracket(self):
        quote = calculate_price(10, COMPLAINT_TIERS, pricing_mode="progressive")
        assert quote.subtotal_cents == 400
        assert quote.unit_price_cents == 40

    def test_unit_price_is_rounded_average(self):
        # 475 / 15 = 31.67
        quote = calculate_price(15, COMPLAINT_TIERS, pricing_mode="progressive")
        assert quote.unit_price_cents == 32

    def test_three_brackets_come_from_rows(self):
        tiers = [
            PriceTier("common", 1, 2, 100),
            PriceTier("common", 3, 5, 50),
            PriceTier("common", 6, None, 10),
        ]
        quote = calculate_price(7, tiers, pricing_mode="progressive")
        assert quote.subtotal_cents == 2 * 100 + 3 * 50 + 2 * 10

    def test_uncovered_units_are_flagged(self):
        tiers = [PriceTier("common", 1, 10, 40)]
        quote = calculate_price(12, tiers, pricing_mode="progressive")
        assert quote.subtotal_cents == 0
        assert quote.is_misconfigured


class TestTiered:
    def test_containing_tier_prices_every_unit(self):
        quote = calculate_price(7, DELAY_TIERS, pricing_mode="tiered")
        assert quote.subtotal_cents == 7 * 80
        assert quote.unit_price_cents == 80

    def test_sale_type_specific_tiers(self):
        quote = calculate_price(4, DELAY_TIERS, sale_type="package_sale")
        assert quote.subtotal_cents == 200

    def test_falls_back_to_common(self):
        quote = calculate_price(3, COMPLAINT_TIERS, sale_type="package_sale", pricing_mode="tiered")
        assert quote.subtotal_cents == 120
        assert quote.warning is None

    def test_no_matching_tier_warns(self):
        tiers = [PriceTier("common", 5, 10, 40)]
        quote = calculate_price(2, tiers)
        assert quote.subtotal_cents == 0
        assert "quantity 2" in quote.warning

    def test_no_tiers_warns(self):
        quote = calculate_price(2, [])
        assert quote.subtotal_cents == 0
        assert quote.is_misconfigured

    def test_non_positive_quantity_is_never_priced(self):
        assert calculate_price(0, DELAY_TIERS).is_misconfigured
        assert calculate_price(-3, DELAY_TIERS).subtotal_cents == 0


class TestModeInference:
    def test_normalize_name_strips_accents_and_case(self):
        assert normalize_name("  Reclamação ") == "reclamacao"

    def test_complaint_names_are_progressive(self):
        assert infer_pricing_mode("RECLAMAÇÃO Premium") == "progressive"
        assert infer_pricing_mode("Complaint") == "progressive"

    def test_other_names_are_tiered(self):
        assert infer_pricing_mode("Atraso") == "tiered"

    def test_tier_contains(self):
        tier = PriceTier("common", 11, None, 15)
        assert tier.contains(11)
        assert tier.contains(10_000)
        assert not tier.contains(10)
