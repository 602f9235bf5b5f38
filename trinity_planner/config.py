"""
Planner Configuration

Loads trinity_config.yaml and merges it over the built-in defaults.

Everything the fee math and the role logic depend on lives here:
- the 3-chain universe and its canonical order
- per-operation gas limits / fee multipliers
- congestion thresholds and confirmation-time tables
- price cache TTL, feed timeouts and conservative default prices
- tie-break and baseline chains
"""

import copy
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger

from .errors import ConfigError, InvalidChain
from .models import ChainId, CongestionLevel


DEFAULT_OPERATION_KEY = 'default'

FEE_MARKET_MODEL = 'fee_market'
BASE_FEE_MODEL = 'base_fee'

DEFAULT_CONFIG = {
    'universe': [ChainId.ETHEREUM.value, ChainId.SOLANA.value, ChainId.TON.value],
    # Cheapest-chain ties resolve in this order
    'tie_break_order': [ChainId.SOLANA.value, ChainId.TON.value, ChainId.ETHEREUM.value],
    'baseline_chain': ChainId.ETHEREUM.value,
    'chains': {
        ChainId.ETHEREUM.value: {
            'name': 'Ethereum',
            'symbol': 'ETH',
            'model': FEE_MARKET_MODEL,
            'default_price_usd': '3610',
            'default_gas_price_gwei': '20',
            'gas_limits': {
                'vault_creation': 500000,
                'withdrawal': 150000,
                'swap': 200000,
                'transfer': 21000,
                'default': 100000,
            },
            'congestion_thresholds_gwei': {
                'medium': '30',
                'high': '80',
            },
            'confirm_seconds': {'low': 15, 'medium': 30, 'high': 60},
            'average_block_time_seconds': 12,
            'ecosystem': 'Account-based smart-contract chain with an EIP-1559 fee market',
            'explorer_url': 'https://etherscan.io',
        },
        ChainId.SOLANA.value: {
            'name': 'Solana',
            'symbol': 'SOL',
            'model': BASE_FEE_MODEL,
            'default_price_usd': '150',
            'base_fee': '0.000005',
            'multipliers': {
                'vault_creation': '60',
                'withdrawal': '10',
                'swap': '20',
                'transfer': '1',
                'default': '5',
            },
            'confirm_seconds': {'low': 1, 'medium': 2, 'high': 5},
            'average_block_time_seconds': 0.4,
            'ecosystem': 'High-throughput proof-of-history chain with flat signature fees',
            'explorer_url': 'https://explorer.solana.com',
        },
        ChainId.TON.value: {
            'name': 'TON',
            'symbol': 'TON',
            'model': BASE_FEE_MODEL,
            'default_price_usd': '5.50',
            'base_fee': '0.01',
            'multipliers': {
                'vault_creation': '3',
                'withdrawal': '1.5',
                'swap': '2',
                'transfer': '1',
                'default': '1',
            },
            'confirm_seconds': {'low': 5, 'medium': 10, 'high': 20},
            'average_block_time_seconds': 5,
            'ecosystem': 'Low-fee sharded chain with Telegram wallet integration',
            'explorer_url': 'https://tonscan.org',
        },
    },
    'price_source': {
        'exchange': 'binance',
        'quote': 'USDT',
        'cache_ttl_seconds': 60,
        'timeout_seconds': 3.0,
    },
    'gas_oracle': {
        'rpc_url': None,
        'timeout_seconds': 3.0,
    },
    'verification': {
        # Minimum security level that pulls in verify1 / both verifiers
        'single_verifier_level': 3,
        'dual_verifier_level': 5,
    },
    'planner': {
        'fee_warning_threshold_usd': '10',
        'balance_safety_multiple': '2',
        'speed_chain': ChainId.SOLANA.value,
        'security_chain': ChainId.ETHEREUM.value,
        'balanced_chain': ChainId.TON.value,
    },
    'history': {
        'db_path': 'fee_history.db',
    },
    'logging': {
        'level': 'INFO',
        'file': None,
    },
}


def _to_decimal(value) -> Decimal:
    return Decimal(str(value))


@dataclass
class ChainSettings:
    """Static fee model settings for one chain"""
    chain_id: str
    name: str
    symbol: str
    model: str
    default_price_usd: Decimal
    confirm_seconds: Dict[str, int]
    default_gas_price_gwei: Optional[Decimal] = None
    gas_limits: Dict[str, int] = field(default_factory=dict)
    congestion_thresholds_gwei: Dict[str, Decimal] = field(default_factory=dict)
    base_fee: Optional[Decimal] = None
    multipliers: Dict[str, Decimal] = field(default_factory=dict)
    average_block_time_seconds: float = 0.0
    ecosystem: str = ''
    explorer_url: Optional[str] = None

    @classmethod
    def from_dict(cls, chain_id: str, data: Dict) -> 'ChainSettings':
        model = data.get('model')
        if model not in (FEE_MARKET_MODEL, BASE_FEE_MODEL):
            raise ConfigError(f"Chain {chain_id}: unknown fee model {model!r}")

        try:
            settings = cls(
                chain_id=chain_id,
                name=data.get('name', chain_id),
                symbol=data.get('symbol', chain_id.upper()),
                model=model,
                default_price_usd=_to_decimal(data['default_price_usd']),
                confirm_seconds={k: int(v) for k, v in data['confirm_seconds'].items()},
                default_gas_price_gwei=(
                    _to_decimal(data['default_gas_price_gwei'])
                    if data.get('default_gas_price_gwei') is not None else None
                ),
                gas_limits={k: int(v) for k, v in (data.get('gas_limits') or {}).items()},
                congestion_thresholds_gwei={
                    k: _to_decimal(v) for k, v in (data.get('congestion_thresholds_gwei') or {}).items()
                },
                base_fee=_to_decimal(data['base_fee']) if data.get('base_fee') is not None else None,
                multipliers={k: _to_decimal(v) for k, v in (data.get('multipliers') or {}).items()},
                average_block_time_seconds=float(data.get('average_block_time_seconds', 0)),
                ecosystem=data.get('ecosystem', ''),
                explorer_url=data.get('explorer_url'),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ConfigError(f"Chain {chain_id}: invalid settings ({e})") from e

        if model == FEE_MARKET_MODEL:
            if settings.default_gas_price_gwei is None or DEFAULT_OPERATION_KEY not in settings.gas_limits:
                raise ConfigError(f"Chain {chain_id}: fee_market model needs default_gas_price_gwei and a default gas limit")
        else:
            if settings.base_fee is None or DEFAULT_OPERATION_KEY not in settings.multipliers:
                raise ConfigError(f"Chain {chain_id}: base_fee model needs base_fee and a default multiplier")

        for level in CongestionLevel:
            if level.value not in settings.confirm_seconds:
                raise ConfigError(f"Chain {chain_id}: confirm_seconds missing '{level.value}'")

        return settings

    @property
    def token(self) -> str:
        return self.symbol

    def gas_limit_for(self, operation_kind: str) -> int:
        """Gas limit for an operation; unknown kinds use the default entry"""
        return self.gas_limits.get(operation_kind, self.gas_limits[DEFAULT_OPERATION_KEY])

    def multiplier_for(self, operation_kind: str) -> Decimal:
        """Fee multiplier for an operation; unknown kinds use the default entry"""
        return self.multipliers.get(operation_kind, self.multipliers[DEFAULT_OPERATION_KEY])

    def congestion_for_gas_price(self, gas_price_gwei: Decimal) -> CongestionLevel:
        high = self.congestion_thresholds_gwei.get('high')
        medium = self.congestion_thresholds_gwei.get('medium')
        if high is not None and gas_price_gwei >= high:
            return CongestionLevel.HIGH
        if medium is not None and gas_price_gwei >= medium:
            return CongestionLevel.MEDIUM
        return CongestionLevel.LOW

    def confirm_seconds_for(self, congestion: CongestionLevel) -> int:
        return self.confirm_seconds[congestion.value]


@dataclass
class TrinityConfig:
    """Resolved planner configuration"""
    universe: List[str]
    tie_break_order: List[str]
    baseline_chain: str
    chains: Dict[str, ChainSettings]
    price_source: Dict
    gas_oracle: Dict
    verification: Dict
    planner: Dict
    history: Dict
    logging: Dict
    source_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict, source_path: Optional[str] = None) -> 'TrinityConfig':
        universe = [str(c) for c in data.get('universe', [])]
        if len(universe) != 3 or len(set(universe)) != 3:
            raise ConfigError(f"Universe must contain exactly 3 distinct chains, got {universe}")

        raw_chains = data.get('chains', {})
        missing = [c for c in universe if c not in raw_chains]
        if missing:
            raise ConfigError(f"No chain settings for: {', '.join(missing)}")

        tie_break_order = [str(c) for c in data.get('tie_break_order') or universe]
        if sorted(tie_break_order) != sorted(universe):
            raise ConfigError(f"tie_break_order must be a permutation of {universe}")

        baseline_chain = str(data.get('baseline_chain', universe[0]))
        if baseline_chain not in universe:
            raise ConfigError(f"baseline_chain {baseline_chain} is not in the universe")

        planner = data.get('planner', {})
        for key in ('speed_chain', 'security_chain', 'balanced_chain'):
            if planner.get(key) not in universe:
                raise ConfigError(f"planner.{key} must be one of {universe}")

        verification = data.get('verification', {})
        single = int(verification.get('single_verifier_level', 3))
        dual = int(verification.get('dual_verifier_level', 5))
        if not (1 < single <= dual <= 5):
            raise ConfigError("verification levels must satisfy 1 < single_verifier_level <= dual_verifier_level <= 5")

        return cls(
            universe=universe,
            tie_break_order=tie_break_order,
            baseline_chain=baseline_chain,
            chains={c: ChainSettings.from_dict(c, raw_chains[c]) for c in universe},
            price_source=data.get('price_source', {}),
            gas_oracle=data.get('gas_oracle', {}),
            verification={'single_verifier_level': single, 'dual_verifier_level': dual},
            planner=planner,
            history=data.get('history', {}),
            logging=data.get('logging', {}),
            source_path=source_path,
        )

    def chain(self, chain_id: str) -> ChainSettings:
        """Settings for a chain, InvalidChain if outside the universe"""
        return self.chains[self.validate_chain(chain_id)]

    def validate_chain(self, chain_id) -> str:
        """Normalize a chain id and check it belongs to the universe"""
        if chain_id is None:
            raise InvalidChain(chain_id, self.universe)
        normalized = str(getattr(chain_id, 'value', chain_id)).strip().lower()
        if normalized not in self.universe:
            raise InvalidChain(chain_id, self.universe)
        return normalized

    @property
    def price_cache_ttl_seconds(self) -> float:
        return float(self.price_source.get('cache_ttl_seconds', 60))

    @property
    def price_timeout_seconds(self) -> float:
        return float(self.price_source.get('timeout_seconds', 3.0))

    def default_prices(self) -> Dict[str, Decimal]:
        """Conservative per-token default prices"""
        return {s.token: s.default_price_usd for s in self.chains.values()}


def _deep_merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _apply_env_overrides(data: Dict) -> Dict:
    rpc_url = os.getenv('TRINITY_ETH_RPC_URL')
    if rpc_url:
        data['gas_oracle']['rpc_url'] = rpc_url

    exchange = os.getenv('TRINITY_PRICE_EXCHANGE')
    if exchange:
        data['price_source']['exchange'] = exchange

    # Optional exchange credentials for authenticated ticker access
    api_key = os.getenv('TRINITY_PRICE_API_KEY')
    if api_key:
        data['price_source']['api_key'] = api_key
        data['price_source']['secret'] = os.getenv('TRINITY_PRICE_API_SECRET')

    db_path = os.getenv('TRINITY_DB_PATH')
    if db_path:
        data['history']['db_path'] = db_path

    log_level = os.getenv('TRINITY_LOG_LEVEL')
    if log_level:
        data['logging']['level'] = log_level

    return data


def load_config(config_path: Optional[str] = None, use_env: bool = True) -> TrinityConfig:
    """
    Load planner configuration

    Priority:
    1. Environment overrides (TRINITY_* variables, .env supported)
    2. YAML file (config_path, else $TRINITY_CONFIG, else ./trinity_config.yaml)
    3. Built-in defaults

    Args:
        config_path: Path to YAML config
        use_env: Apply TRINITY_* environment overrides

    Returns:
        TrinityConfig
    """
    if use_env:
        load_dotenv()
        config_path = config_path or os.getenv('TRINITY_CONFIG')

    path = Path(config_path) if config_path else Path('trinity_config.yaml')
    file_data: Dict = {}

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_data = yaml.safe_load(f) or {}
            logger.info(f"📚 Loaded planner config from {path}")
        except Exception as e:
            logger.error(f"Error loading config {path}: {e}")
            file_data = {}
    elif config_path:
        logger.warning(f"Config file {path} not found, using built-in defaults")

    data = _deep_merge(DEFAULT_CONFIG, file_data)
    if use_env:
        data = _apply_env_overrides(data)

    return TrinityConfig.from_dict(data, source_path=str(path) if file_data else None)


def default_config() -> TrinityConfig:
    """Built-in defaults only, no file and no environment"""
    return TrinityConfig.from_dict(copy.deepcopy(DEFAULT_CONFIG))
