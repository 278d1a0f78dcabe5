"""
Tests for the pydantic request/response models.
"""

import importlib
import warnings
from decimal import Decimal

import pytest
from pydantic import PydanticDeprecatedSince20

from database.models import OrderKind, SignalAction
from signal_intake.schemas import WebhookSignal


class TestWebhookSignal:
    """Tests for webhook payload parsing."""

    def test_aliases_and_field_names(self):
        """Test camelCase aliases and snake_case names both populate."""
        by_alias = WebhookSignal.model_validate(
            {"action": "buy", "symbol": "btcusdt", "orderType": "limit", "price": "100", "stopLoss": "95"}
        )
        by_name = WebhookSignal.model_validate(
            {"action": "buy", "symbol": "btcusdt", "order_type": "limit", "price": "100", "stop_loss": "95"}
        )

        assert by_alias == by_name
        assert by_alias.order_type == OrderKind.LIMIT
        assert by_alias.stop_loss == Decimal("95")
        assert by_alias.action == SignalAction.BUY

    @pytest.mark.parametrize("module", ["signal_intake.schemas", "human_review.schemas", "api.schemas"])
    def test_models_use_v2_config(self, module):
        """Test model modules load without pydantic v1-style config warnings."""
        with warnings.catch_warnings():
            warnings.simplefilter("error", PydanticDeprecatedSince20)
            importlib.reload(importlib.import_module(module))
