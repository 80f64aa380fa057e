import pytest

from backoffice.errors import ConflictError, ValidationError
from backoffice.extensions import db
from backoffice.models import PriceRange
from backoffice.services import catalog_service
from backoffice.routes import catalog as catalog_routes


def _ranges(*rows):
    return [
        {"sale_type": st, "min_quantity": lo, "max_quantity": hi, "unit_price_cents": price}
        for st, lo, hi, price in rows
    ]


class TestPriceRangeValidation:
    def test_contiguous_ranges_pass(self):
        parsed = catalog_service.validate_price_ranges(_ranges(
            ("common", 1, 5, 100),
            ("common", 6, None, 80),
            ("package_sale", 1, None, 50),
        ))
        assert len(parsed) == 3

    def test_ranges_are_checked_in_quantity_order(self):
        parsed = catalog_service.validate_price_ranges(_ranges(
            ("common", 6, None, 80),
            ("common", 1, 5, 100),
        ))
        assert {r["min_quantity"] for r in parsed} == {1, 6}

    @pytest.mark.parametrize(
        "rows",
        [
            [("common", 2, None, 100)],                              # does not start at 1
            [("common", 1, 5, 100), ("common", 7, None, 80)],        # gap
            [("common", 1, 5, 100), ("common", 5, None, 80)],        # overlap
            [("common", 1, None, 100), ("common", 6, 9, 80)],        # unbounded not last
            [("common", 1, 0, 100)],                                 # max < min
            [("common", 1, None, -1)],                               # negative price
            [("barter", 1, None, 10)],                               # unknown sale type
        ],
    )
    def test_invalid_ranges(self, rows):
        with pytest.raises(ValidationError):
            catalog_service.validate_price_ranges(_ranges(*rows))

    def test_must_be_a_list(self):
        with pytest.raises(ValidationError):
            catalog_service.validate_price_ranges({"min_quantity": 1})


class TestServices:
    def test_create_infers_mode_from_name(self, db_session):
        service = catalog_service.create_service({
            "name": "Reclamação Trabalhista",
            "price_ranges": _ranges(("common", 1, 10, 4000), ("common", 11, None, 1500)),
        })
        assert service.pricing_mode == "progressive"
        assert len(service.price_ranges) == 2

        plain = catalog_service.create_service({"name": "Atraso"})
        assert plain.pricing_mode == "tiered"

    def test_explicit_mode_wins(self, db_session):
        service = catalog_service.create_service({"name": "Reclamação", "pricing_mode": "tiered"})
        assert service.pricing_mode == "tiered"

    def test_duplicate_name(self, db_session, delay_service):
        with pytest.raises(ConflictError):
            catalog_service.create_service({"name": "Atraso"})

    def test_unknown_field(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_service({"name": "X", "color": "red"})

    def test_update_replaces_ranges(self, db_session, delay_service):
        updated = catalog_service.update_service(delay_service.id, {
            "price_ranges": _ranges(("common", 1, None, 70)),
            "commission_rate_bps": 1500,
        })
        assert [(r.min_quantity, r.max_quantity, r.unit_price_cents) for r in updated.price_ranges] == [(1, None, 70)]
        assert updated.commission_rate_bps == 1500

    def test_update_reprices_tiers_keeping_boundaries(self, db_session, complaint_service):
        catalog_service.update_service(complaint_service.id, {
            "price_ranges": _ranges(("common", 1, 10, 45), ("common", 11, None, 15)),
        })

        db.session.expire_all()
        service = catalog_service.get_service(complaint_service.id)
        assert [(r.min_quantity, r.max_quantity, r.unit_price_cents) for r in service.price_ranges] == [
            (1, 10, 45),
            (11, None, 15),
        ]
        assert service.name == "Complaint"
        assert db.session.query(PriceRange).filter_by(service_id=service.id).count() == 2

    def test_update_rename_clash(self, db_session, delay_service, complaint_service):
        with pytest.raises(ConflictError):
            catalog_service.update_service(delay_service.id, {"name": "Complaint"})
        assert catalog_service.get_service(delay_service.id).name == "Atraso"

    def test_update_bad_rate_leaves_service_untouched(self, db_session, delay_service):
        with pytest.raises(ValidationError):
            catalog_service.update_service(delay_service.id, {"name": "Renamed", "commission_rate_bps": 20_000})
        assert catalog_service.get_service(delay_service.id).name == "Atraso"

    def test_inactive_services_are_hidden(self, db_session, delay_service, complaint_service):
        catalog_service.update_service(delay_service.id, {"is_active": False})
        assert [s.name for s in catalog_service.list_services()] == ["Complaint"]
        assert len(catalog_service.list_services(include_inactive=True)) == 2


class TestRoutes:
    def test_quote(self, client, db_session, attendant_headers, complaint_service):
        response = client.get(f"/api/services/{complaint_service.id}/quote?quantity=15", headers=attendant_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["subtotal_cents"] == 475
        assert body["mode"] == "progressive"
        assert body["warning"] is None

    def test_quote_needs_positive_quantity(self, client, db_session, attendant_headers, complaint_service):
        response = client.get(f"/api/services/{complaint_service.id}/quote?quantity=0", headers=attendant_headers)
        assert response.status_code == 400

    def test_list_for_attendants(self, client, db_session, attendant_headers, delay_service):
        services = client.get("/api/services", headers=attendant_headers).get_json()["services"]
        assert [s["name"] for s in services] == ["Atraso"]
        assert len(services[0]["price_ranges"]) == 3

    def test_writes_are_admin_only(self, client, db_session, attendant_headers, admin_headers, delay_service):
        body = {"name": "Plantão", "price_ranges": _ranges(("common", 1, None, 900))}
        assert client.post("/api/services", json=body, headers=attendant_headers).status_code == 403
        assert client.put(f"/api/services/{delay_service.id}", json={"is_active": False}, headers=attendant_headers).status_code == 403

        created = client.post("/api/services", json=body, headers=admin_headers)
        assert created.status_code == 201
        assert created.get_json()["service"]["pricing_mode"] == "tiered"

        bad = client.put(
            f"/api/services/{delay_service.id}",
            json={"price_ranges": _ranges(("common", 3, None, 10))},
            headers=admin_headers,
        )
        assert bad.status_code == 400

    def test_admin_reprices_then_quote_follows(self, client, db_session, attendant_headers, admin_headers, complaint_service):
        response = client.put(
            f"/api/services/{complaint_service.id}",
            json={"price_ranges": _ranges(("common", 1, 10, 45), ("common", 11, None, 15))},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert [r["unit_price_cents"] for r in response.get_json()["service"]["price_ranges"]] == [45, 15]

        quote = client.get(f"/api/services/{complaint_service.id}/quote?quantity=15", headers=attendant_headers)
        assert quote.get_json()["subtotal_cents"] == 10 * 45 + 5 * 15

    def test_unexpected_errors_return_json_500(self, client, db_session, attendant_headers, complaint_service, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(catalog_service, "list_services", broken)
        monkeypatch.setattr(catalog_routes, "quote_service", broken)

        listed = client.get("/api/services", headers=attendant_headers)
        assert listed.status_code == 500
        assert listed.get_json() == {"error": "Internal server error"}

        quoted = client.get(f"/api/services/{complaint_service.id}/quote?quantity=3", headers=attendant_headers)
        assert quoted.status_code == 500
        assert quoted.get_json() == {"error": "Internal server error"}
