"""Tests for filter policy updates and settings."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from vinted_sniper.config import ConfigurationError, Settings, build_policy, parse_list
from vinted_sniper.detect.policy import FilterPolicy, PolicyHolder, PolicyUpdate


class TestFilterPolicy:
    """Test the immutable policy value."""

    def test_terms_cleaned_and_prices_decimal(self):
        policy = FilterPolicy(allowed_brands=[" Nike ", "", "Adidas"], max_price=40)
        assert policy.allowed_brands == ("Nike", "Adidas")
        assert policy.max_price == Decimal("40")

    def test_merged_unknown_field(self):
        with pytest.raises(ValueError):
            FilterPolicy().merged(colour="red")

    def test_dict_round_trip(self):
        policy = FilterPolicy(
            allowed_brands=("Nike",),
            excluded_keywords=("fake",),
            min_price=Decimal("5"),
            max_price=Decimal("40.5"),
            max_age_minutes=60,
            require_image=True,
        )
        assert FilterPolicy.from_dict(policy.to_dict()) == policy

    def test_from_dict_ignores_unknown(self):
        policy = FilterPolicy.from_dict({"max_price": "12", "legacy": True})
        assert policy.max_price == Decimal("12")


class TestPolicyHolder:
    """Test partial updates."""

    def setup_method(self):
        self.holder = PolicyHolder(
            FilterPolicy(allowed_brands=("Nike",), max_price=Decimal("40"), require_image=True)
        )

    def test_partial_update_keeps_other_fields(self):
        policy = self.holder.update({"max_price": 25})
        assert policy.max_price == Decimal("25")
        assert policy.allowed_brands == ("Nike",)
        assert policy.require_image is True
        assert self.holder.get() is policy

    def test_none_clears_bounds_and_lists(self):
        policy = self.holder.update(PolicyUpdate(max_price=None, allowed_brands=None))
        assert policy.max_price is None
        assert policy.allowed_brands == ()

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            self.holder.update({"min_price": -1})
        assert self.holder.get().min_price is None

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            self.holder.update({"maxPrice": 10})
        assert self.holder.get().max_price == Decimal("40")

    def test_to_document_keeps_only_set_fields(self):
        update = PolicyUpdate(max_price=Decimal("12.5"), allowed_sizes=None)
        assert update.to_document() == {"max_price": "12.5", "allowed_sizes": None}

    def test_negative_age_rejected(self):
        with pytest.raises(ValidationError):
            self.holder.update({"max_age_minutes": -5})


class TestSettings:
    """Test environment configuration."""

    def test_parse_list(self):
        assert parse_list("Nike, Adidas ,") == ["Nike", "Adidas"]
        assert parse_list("nike adidas") == ["nike", "adidas"]
        assert parse_list("") == []
        assert parse_list(["a", " b "]) == ["a", "b"]

    def test_env_aliases_and_brand_mode(self, monkeypatch):
        monkeypatch.setenv("TOK", "123:abc")
        monkeypatch.setenv("CHAT_ID", "42")
        monkeypatch.setenv("BRANDS", "Nike,Carhartt")
        monkeypatch.setenv("KEYWORD", "ignored")
        settings = Settings(_env_file=None)

        assert settings.telegram_token == "123:abc"
        assert settings.brand_mode is True
        assert settings.search_terms == ["Nike", "Carhartt"]
        settings.validate_required()

        policy = build_policy(settings)
        assert policy.allowed_brands == ("Nike", "Carhartt")
        assert policy.max_price == Decimal("40.0")
        assert policy.max_age_minutes == 60
        assert policy.require_image is True

    def test_keyword_mode(self, monkeypatch):
        monkeypatch.delenv("BRANDS", raising=False)
        monkeypatch.setenv("KEYWORDS", "felpa vintage")
        settings = Settings(_env_file=None)
        assert settings.brand_mode is False
        assert settings.search_terms == ["felpa", "vintage"]
        assert build_policy(settings).allowed_brands == ()

    def test_missing_token_is_configuration_error(self, monkeypatch):
        for name in ("TOK", "TELEGRAM_TOKEN", "CHAT_ID"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("KEYWORDS", "felpa")
        with pytest.raises(ConfigurationError, match="TOK"):
            Settings(_env_file=None).validate_required()

    def test_missing_search_terms(self):
        settings = Settings(_env_file=None, telegram_token="t", chat_id="1", brands="", keywords="")
        with pytest.raises(ConfigurationError):
            settings.validate_required()

    def test_negative_interval(self):
        settings = Settings(
            _env_file=None, telegram_token="t", chat_id="1", keywords="x", poll_interval_ms=-1
        )
        with pytest.raises(ConfigurationError):
            settings.validate_required()
