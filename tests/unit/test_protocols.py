"""Unit tests for protocol identifiers, profiles and market snapshots."""

from types import MappingProxyType

import pytest

from yield_rebalancer.protocols.base import (
    DEFAULT_RISK,
    DEFAULT_YIELD,
    PROTOCOL_TABLE,
    MarketSnapshot,
    Protocol,
    ProtocolId,
    default_protocols,
)
from yield_rebalancer.utils.exceptions import DataQualityError


class TestProtocolId:
    """Test cases for ProtocolId."""

    def test_parse_name(self) -> None:
        """Test parsing is case- and whitespace-insensitive."""
        assert ProtocolId.parse("lido") == ProtocolId.LIDO
        assert ProtocolId.parse(" RocketPool ") == ProtocolId.ROCKETPOOL

    def test_parse_identity(self) -> None:
        """Test parsing an identifier returns it."""
        assert ProtocolId.parse(ProtocolId.MORPHO) is ProtocolId.MORPHO

    def test_parse_unknown(self) -> None:
        """Test unknown names raise DataQualityError."""
        with pytest.raises(DataQualityError, match="Unknown protocol 'aave'"):
            ProtocolId.parse("aave")


class TestProtocolTable:
    """Test cases for PROTOCOL_TABLE."""

    def test_every_protocol_has_profile(self) -> None:
        """Test the table covers the closed protocol set."""
        assert set(PROTOCOL_TABLE) == set(ProtocolId)

    def test_base_allocations_sum_to_100(self) -> None:
        """Test base allocations split the whole portfolio."""
        assert sum(p.base_allocation for p in PROTOCOL_TABLE.values()) == 100

    def test_caps_and_contract_risk(self) -> None:
        """Test caps and contract maturity constants."""
        assert PROTOCOL_TABLE[ProtocolId.LIDO].max_allocation == 40
        assert PROTOCOL_TABLE[ProtocolId.MORPHO].max_allocation == 25
        assert PROTOCOL_TABLE[ProtocolId.LIDO].contract_risk == 1.0
        assert PROTOCOL_TABLE[ProtocolId.MORPHO].contract_risk == 3.0

    def test_table_is_read_only(self) -> None:
        """Test the table cannot be modified."""
        with pytest.raises(TypeError):
            PROTOCOL_TABLE[ProtocolId.LIDO] = None


class TestProtocol:
    """Test cases for Protocol."""

    def test_from_profile(self) -> None:
        """Test building from table defaults."""
        protocol = Protocol.from_profile(ProtocolId.ETHERFI, total_staked=10)

        assert protocol.name == "etherfi"
        assert protocol.total_staked == 10
        assert protocol.withdrawal_delay_hours == 7.0
        assert protocol.max_allocation == 30.0

    def test_risk_score_bounds(self) -> None:
        """Test risk score must be within [0, 10]."""
        with pytest.raises(ValueError, match="risk_score must be in"):
            Protocol(ProtocolId.LIDO, yield_rate=5.0, risk_score=11)

    def test_max_allocation_bounds(self) -> None:
        """Test allocation cap must be within [0, 100]."""
        with pytest.raises(ValueError, match="max_allocation must be in"):
            Protocol(ProtocolId.LIDO, yield_rate=5.0, max_allocation=101)

    def test_negative_total_staked(self) -> None:
        """Test total staked cannot be negative."""
        with pytest.raises(ValueError, match="total_staked must be non-negative"):
            Protocol(ProtocolId.LIDO, yield_rate=5.0, total_staked=-1)

    def test_default_protocols(self) -> None:
        """Test one default protocol per identifier, nothing staked."""
        protocols = default_protocols()

        assert [p.protocol_id for p in protocols] == list(ProtocolId)
        assert all(p.total_staked == 0 for p in protocols)


class TestMarketSnapshot:
    """Test cases for MarketSnapshot."""

    def test_from_names(self) -> None:
        """Test building from name-keyed maps."""
        snapshot = MarketSnapshot.from_names(
            fee_price=42,
            reference_asset_price=2340,
            yields={"lido": 8.1, "morpho": 9.2},
            risks={"lido": 1.0},
        )

        assert snapshot.protocols == [ProtocolId.LIDO, ProtocolId.MORPHO]
        assert snapshot.yield_for(ProtocolId.MORPHO) == 9.2

    def test_missing_keys_use_defaults(self) -> None:
        """Test missing yields default to 0 and missing risks to 1."""
        snapshot = MarketSnapshot(fee_price=1, reference_asset_price=1)

        assert snapshot.yield_for(ProtocolId.ETHERFI) == DEFAULT_YIELD == 0.0
        assert snapshot.risk_for(ProtocolId.ETHERFI) == DEFAULT_RISK == 1.0

    def test_immutable(self) -> None:
        """Test neither the snapshot nor its maps can be changed."""
        yields = {ProtocolId.LIDO: 8.0}
        snapshot = MarketSnapshot(fee_price=1, reference_asset_price=1, yields=yields)

        yields[ProtocolId.LIDO] = 99.0
        assert snapshot.yield_for(ProtocolId.LIDO) == 8.0
        assert isinstance(snapshot.yields, MappingProxyType)

        with pytest.raises(TypeError):
            snapshot.yields[ProtocolId.LIDO] = 1.0
        with pytest.raises(AttributeError):
            snapshot.fee_price = 10

    def test_negative_fee_rejected(self) -> None:
        """Test negative fee prices raise DataQualityError."""
        with pytest.raises(DataQualityError, match="fee_price must be non-negative"):
            MarketSnapshot(fee_price=-1, reference_asset_price=1)

    def test_unknown_protocol_rejected(self) -> None:
        """Test unknown protocol names raise DataQualityError."""
        with pytest.raises(DataQualityError):
            MarketSnapshot.from_names(1, 1, yields={"aave": 5.0}, risks={})
