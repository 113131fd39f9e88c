"""Unit tests for setup-phase validation"""
import pytest

from service.errors import ConfigurationError, ValidationError
from service.run_setup import check_seller_account, resolve_region_config, validate_inputs
from service.tracking_service import compute_data_range, is_tracking_day


def _account(**overrides):
    account = {"sp_refresh_token": "sp-rt", "ads_refresh_token": "ads-rt", "profile_id": "p1", "seller_id": "S1"}
    account.update(overrides)
    return account


class TestValidateInputs:

    def test_valid(self):
        validate_inputs("u1", "na", "us")

    @pytest.mark.parametrize("user_id,region,country", [
        ("", "NA", "US"),
        ("u1", None, "US"),
        ("u1", "NA", ""),
        ("u1", "XX", "US"),
    ])
    def test_invalid(self, user_id, region, country):
        with pytest.raises(ValidationError) as exc:
            validate_inputs(user_id, region, country)
        assert exc.value.status_code == 400


class TestRegionConfig:

    def test_us(self):
        config = resolve_region_config("na", "us")
        assert config.region == "NA"
        assert config.marketplace_id == "ATVPDKIKX0DER"
        assert config.base_uri
        assert config.ads_base_uri
        assert config.aws_region

    def test_unknown_country(self):
        with pytest.raises(ConfigurationError):
            resolve_region_config("NA", "ZZ")

    def test_unknown_region(self):
        with pytest.raises(ConfigurationError):
            resolve_region_config("MARS", "US")


class TestSellerAccount:

    def test_missing_account_is_404(self):
        with pytest.raises(ValidationError) as exc:
            check_seller_account(None, "u1", "NA", "US")
        assert exc.value.status_code == 404

    def test_no_refresh_tokens(self):
        with pytest.raises(ValidationError):
            check_seller_account(_account(sp_refresh_token=None, ads_refresh_token=None), "u1", "NA", "US")

    def test_missing_seller_id(self):
        with pytest.raises(ValidationError):
            check_seller_account(_account(seller_id=None), "u1", "NA", "US")

    def test_ads_token_requires_profile(self):
        with pytest.raises(ValidationError):
            check_seller_account(_account(profile_id=None), "u1", "NA", "US")

    def test_sp_only_account_is_valid(self):
        account = _account(ads_refresh_token=None, profile_id=None)
        assert check_seller_account(account, "u1", "NA", "US") is account


class TestTrackingHelpers:

    def test_tracking_days(self):
        assert [d for d in range(7) if is_tracking_day(d)] == [1, 3, 5]

    def test_data_range_ends_yesterday(self):
        from datetime import datetime, timezone
        data_range = compute_data_range(datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc), lookback_days=30)
        assert data_range.end_date == "2026-10-18"
        assert data_range.start_date == "2026-09-18"
