"""Unit tests for listing fingerprints."""

from alert_engine.utils.hashing import compute_listing_fingerprint


def fingerprint(**overrides):
    fields = {
        "price": 550,
        "category_id": "phones",
        "latitude": 37.76,
        "longitude": -122.42,
        "is_active": True,
        "status": "active",
    }
    fields.update(overrides)
    return compute_listing_fingerprint(**fields)


class TestComputeListingFingerprint:
    """Tests for compute_listing_fingerprint."""

    def test_fingerprint_is_sha256_hex(self):
        result = fingerprint()

        assert len(result) == 64
        assert all(c in "0123456789abcdef" for c in result)

    def test_fingerprint_is_deterministic(self):
        assert fingerprint() == fingerprint()

    def test_int_and_float_prices_hash_the_same(self):
        assert fingerprint(price=550) == fingerprint(price=550.0)

    def test_price_change_changes_fingerprint(self):
        assert fingerprint(price=550) != fingerprint(price=549)

    def test_missing_price_differs_from_zero(self):
        assert fingerprint(price=None) != fingerprint(price=0)

    def test_location_change_changes_fingerprint(self):
        assert fingerprint(latitude=37.77) != fingerprint()

    def test_category_change_changes_fingerprint(self):
        assert fingerprint(category_id="tablets") != fingerprint()

    def test_status_is_case_insensitive(self):
        assert fingerprint(status="ACTIVE") == fingerprint(status="active")

    def test_deactivation_changes_fingerprint(self):
        assert fingerprint(is_active=False) != fingerprint()
