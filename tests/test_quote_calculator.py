"""Tests for the quote calculator."""

import math

import pytest

from app.services.quote_calculator import (
    PricingVariables,
    QuoteResult,
    Supplement,
    calculate_quote,
    find_crane_surcharge,
    supplements_from_list,
)


def _variables(**overrides):
    values = {
        "tarif_km_base_chf": 0.85,
        "maj_carburant_pct": 15,
        "maj_embouteillage_pct": 5,
        "tva_rate_pct": 7.7,
    }
    values.update(overrides)
    return PricingVariables.from_dict(values)


class TestReferenceQuotes:
    def test_base_with_fuel_and_traffic(self):
        quote = calculate_quote(100, 2, _variables(), [])

        assert quote.prix_base_ht == pytest.approx(170)
        assert quote.prix_estime_ht == pytest.approx(204)
        assert quote.prix_estime_ttc == pytest.approx(219.708)

    def test_percentage_supplement_applies_to_base(self):
        crane = Supplement(nom="Surcharge grue", type="pct", montant=20)

        quote = calculate_quote(100, 2, _variables(), [crane])

        assert quote.prix_estime_ht == pytest.approx(238)
        assert quote.prix_estime_ttc == pytest.approx(256.326)
        assert quote.surcharges[-1] == ("Surcharge grue", pytest.approx(34))

    def test_fixed_supplement(self):
        toll = Supplement(nom="Péage", type="fixe", montant=15)

        quote = calculate_quote(100, 2, _variables(), [toll])

        assert quote.prix_estime_ht == pytest.approx(219)
        assert quote.prix_estime_ttc == pytest.approx(235.863)

    def test_zero_distance_keeps_fixed_supplements(self):
        variables = PricingVariables(tarif_km_base_chf=1)
        supplements = [Supplement(nom="", type="fixe", montant=10)]

        quote = calculate_quote(0, 5, variables, supplements)

        assert quote.prix_base_ht == 0
        assert quote.prix_estime_ht == pytest.approx(10)
        assert quote.prix_estime_ttc == pytest.approx(10)

    def test_all_zero(self):
        quote = calculate_quote(0, 0, PricingVariables(), [])

        assert (quote.prix_base_ht, quote.prix_estime_ht, quote.prix_estime_ttc) == (0, 0, 0)


class TestInputNormalization:
    @pytest.mark.parametrize("bad", [None, "abc", -5, float("nan"), float("inf"), True])
    def test_invalid_distance_counts_as_zero(self, bad):
        quote = calculate_quote(bad, 2, _variables(), [])
        assert quote.prix_base_ht == 0
        assert quote.prix_estime_ht == 0

    def test_numeric_strings_are_accepted(self):
        quote = calculate_quote("100", "2", _variables(), [])
        assert quote.prix_base_ht == pytest.approx(170)

    def test_missing_variables_raise(self):
        with pytest.raises(TypeError):
            calculate_quote(100, 2, None, [])

    def test_variables_may_be_a_dict(self):
        quote = calculate_quote(100, 2, {"tarif_km_base_chf": 1}, [])
        assert quote.prix_base_ht == 200
        assert quote.prix_estime_ttc == 200

    def test_negative_rate_counts_as_zero(self):
        variables = PricingVariables.from_dict({"tarif_km_base_chf": 1, "tva_rate_pct": -20})
        assert variables.tva_rate_pct == 0

    def test_supplements_may_be_dicts(self):
        quote = calculate_quote(100, 2, _variables(), [{"nom": "Péage", "type": "fixe", "montant": 15}])
        assert quote.prix_estime_ht == pytest.approx(219)


class TestProperties:
    def test_total_is_base_plus_surcharges(self):
        supplements = [
            Supplement(nom="Surcharge grue", type="pct", montant=20),
            Supplement(nom="Péage", type="fixe", montant=15),
        ]
        quote = calculate_quote(42.5, 3.2, _variables(), supplements)

        total = quote.prix_base_ht + sum(amount for _, amount in quote.surcharges)
        assert quote.prix_estime_ht == pytest.approx(total)

    def test_ttc_never_below_ht(self):
        quote = calculate_quote(37, 1.5, _variables(), [])
        assert quote.prix_estime_ttc >= quote.prix_estime_ht >= quote.prix_base_ht

    def test_percentages_do_not_compound(self):
        variables = _variables(maj_carburant_pct=10, maj_embouteillage_pct=10)
        quote = calculate_quote(100, 1, variables, [])
        # 85 + 8.5 + 8.5, not 85 * 1.1 * 1.1
        assert quote.prix_estime_ht == pytest.approx(102)

    def test_no_rounding(self):
        quote = calculate_quote(1, 1, PricingVariables(tarif_km_base_chf=1 / 3), [])
        assert quote.prix_base_ht == pytest.approx(1 / 3, abs=1e-12)
        assert not math.isclose(quote.prix_base_ht, 0.33)

    def test_same_arguments_give_the_same_quote(self):
        variables = _variables()
        supplements = [
            Supplement(nom="Surcharge grue", type="pct", montant=20),
            Supplement(nom="Péage", type="fixe", montant=15),
        ]
        before = list(supplements)

        first = calculate_quote(42.5, 3.2, variables, supplements, extras_chf=5)
        second = calculate_quote(42.5, 3.2, variables, supplements, extras_chf=5)

        assert first == second
        assert supplements == before

    def test_negative_fuel_rate_is_kept(self):
        quote = calculate_quote(100, 1, _variables(maj_carburant_pct=-10, maj_embouteillage_pct=0), [])
        # 85 - 8.5
        assert quote.prix_estime_ht == pytest.approx(76.5)

    def test_surcharge_order(self):
        supplements = [
            Supplement(nom="Hayon", type="fixe", montant=30),
            Supplement(nom="Week-end", type="pct", montant=10),
        ]
        quote = calculate_quote(10, 1, _variables(), supplements, extras_chf=5)

        names = [name for name, _ in quote.surcharges]
        assert names == ["Majoration carburant", "Majoration embouteillage", "Hayon", "Week-end", "Extras"]


class TestExtrasAndMinimumCharge:
    def test_extras_added_after_supplements(self):
        quote = calculate_quote(100, 2, _variables(), [], extras_chf=50)
        assert quote.prix_estime_ht == pytest.approx(254)

    def test_minimum_charge_floors_the_total(self):
        quote = calculate_quote(1, 1, _variables(tva_rate_pct=0), [], min_charge_ht=80)
        assert quote.prix_estime_ht == 80
        assert quote.prix_estime_ttc == 80

    def test_minimum_charge_below_total_has_no_effect(self):
        quote = calculate_quote(100, 2, _variables(), [], min_charge_ht=50)
        assert quote.prix_estime_ht == pytest.approx(204)


class TestSupplements:
    def test_legacy_fix_type_is_fixed(self):
        supplement = Supplement.from_dict({"nom": "Péage", "type": "fix", "montant": 15})
        assert supplement.type == "fixe"
        assert not supplement.is_pct

    def test_unknown_type_is_treated_as_flat(self):
        quote = calculate_quote(100, 2, _variables(), [{"nom": "?", "type": "other", "montant": 12}])
        assert quote.prix_estime_ht == pytest.approx(216)

    def test_supplements_from_list_skips_garbage(self):
        parsed = supplements_from_list([{"nom": "A", "type": "pct", "montant": 5}, "oops", None])
        assert parsed == [Supplement(nom="A", type="pct", montant=5)]

    def test_supplements_from_empty(self):
        assert supplements_from_list(None) == []

    def test_negative_fixed_supplement_is_a_discount(self):
        discount = Supplement(nom="Remise fidélité", type="fixe", montant=-20)
        quote = calculate_quote(100, 2, _variables(), [discount])
        assert quote.prix_estime_ht == pytest.approx(184)
        assert quote.surcharges[-1] == ("Remise fidélité", -20)

    def test_negative_pct_supplement_is_a_discount(self):
        variables = PricingVariables(tarif_km_base_chf=1)
        quote = calculate_quote(100, 1, variables, [Supplement(nom="Remise", type="pct", montant=-10)])
        assert quote.prix_estime_ht == pytest.approx(90)

    def test_negative_amounts_keep_their_sign_when_parsed(self):
        parsed = supplements_from_list([{"nom": "Remise", "type": "fixe", "montant": -20}])
        assert parsed[0].to_dict()["montant"] == -20

    def test_invalid_amount_counts_as_zero(self):
        parsed = supplements_from_list([{"nom": "X", "type": "fixe", "montant": float("nan")}])
        assert parsed[0].montant == 0

    def test_find_crane_surcharge(self):
        supplements = supplements_from_list([
            {"nom": "Péage", "type": "fixe", "montant": 15},
            {"nom": "Surcharge GRUE", "type": "pct", "montant": 20},
        ])
        assert find_crane_surcharge(supplements).montant == 20
        assert find_crane_surcharge(supplements[:1]) is None


def test_quote_result_to_dict():
    result = QuoteResult(
        prix_base_ht=170,
        prix_estime_ht=204,
        prix_estime_ttc=219.708,
        surcharges=[("Majoration carburant", 25.5)],
    )

    data = result.to_dict()

    assert data["prixBaseHt"] == 170
    assert data["prixEstimeTtc"] == 219.708
    assert data["surcharges"] == [{"nom": "Majoration carburant", "montant_chf": 25.5}]
