"""Supported chains and canonical Juicebox contract addresses.

Every protocol contract below is deployed with CREATE2, so the same address is
valid on every supported chain. Nothing here derives addresses; the tables are
taken as given.
"""

from typing import Any, Dict, Optional

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Native-currency sentinel used by JB terminals instead of an ERC-20 address
NATIVE_TOKEN = "0x000000000000000000000000000000000000EEEe"

# Permit2 is identical on every EVM chain
PERMIT2_ADDRESS = "0x000000000022D473030F116dDEE9F6B43aC78BA3"

ERC2771_FORWARDER_ADDRESS = "0xc29d6995ab3b0df4650ad643adeac55e7acbb566"

MAX_UINT256 = 2**256 - 1
MAX_UINT160 = 2**160 - 1
MAX_UINT112 = 2**112 - 1

# JB splits are expressed out of 1,000,000,000
SPLITS_TOTAL_PERCENT = 1_000_000_000
MAX_RESERVED_PERCENT = 10_000

# Abstract currency ids used for ruleset base currency and limits
NATIVE_CURRENCY = 1
USD_CURRENCY = 2

JB_CONTRACTS: Dict[str, str] = {
    "JBDirectory": "0x0061e516886a0540f63157f112c0588ee0651dcf",
    "JBController": "0x27da30646502e2f642be5281322ae8c394f7668a",
    "JBController5_1": "0xf3cc99b11bd73a2e3b8815fb85fe0381b29987e1",
    "JBMultiTerminal": "0x2db6d704058e552defe415753465df8df0361846",
    "JBMultiTerminal5_1": "0x52869db3d61dde1e391967f2ce5039ad0ecd371c",
    "JBOmnichainDeployer": "0x587bf86677ec0d1b766d9ba0d7ac2a51c6c2fc71",
    "REVDeployer": "0x2ca27bde7e7d33e353b44c27acfcf6c78dde251d",
    "JBSuckerRegistry": "0x07c8c5bf08f0361883728a8a5f8824ba5724ece3",
    "JBSwapTerminalRegistry": "0x60b4f5595ee509c4c22921c7b7999f1616e6a4f6",
    "JBSwapTerminalUSDCRegistry": "0x1ce40d201cdec791de05810d17aaf501be167422",
}

SUCKER_DEPLOYERS: Dict[str, str] = {
    "arbitrum": "0xea06bd663a1cec97b5bdec9375ab9a63695c9699",
    "optimism": "0x77cdb0f5eef8febd67dd6e594ff654fb12cc3057",
    "base": "0xd9f35d8dd36046f14479e6dced03733724947efd",
}

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    1: {
        "name": "Ethereum",
        "native_symbol": "ETH",
        "explorer": "https://etherscan.io",
        "usdc": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        "swap_terminal": "0x259385b97dfbd5576bd717dc7b25967ec8b145dd",
        "sucker_deployer": SUCKER_DEPLOYERS["optimism"],  # L1 hub pairs with OP stack
    },
    10: {
        "name": "Optimism",
        "native_symbol": "ETH",
        "explorer": "https://optimistic.etherscan.io",
        "usdc": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        "swap_terminal": "0x73d04584bde126242c36c2c7b219cbdec7aad774",
        "sucker_deployer": SUCKER_DEPLOYERS["optimism"],
    },
    8453: {
        "name": "Base",
        "native_symbol": "ETH",
        "explorer": "https://basescan.org",
        "usdc": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "swap_terminal": "0x4fd73d8b285e82471f08a4ef9861d6248b832edd",
        "sucker_deployer": SUCKER_DEPLOYERS["base"],
    },
    42161: {
        "name": "Arbitrum",
        "native_symbol": "ETH",
        "explorer": "https://arbiscan.io",
        "usdc": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        "swap_terminal": "0x483c9b12c5bd2da73133aae30642ce0008c752ad",
        "sucker_deployer": SUCKER_DEPLOYERS["arbitrum"],
    },
}

SUPPORTED_CHAIN_IDS = tuple(CHAIN_METADATA.keys())


def is_supported_chain(chain_id: int) -> bool:
    return chain_id in CHAIN_METADATA


def chain_name(chain_id: int) -> str:
    meta = CHAIN_METADATA.get(chain_id)
    return meta["name"] if meta else f"Chain {chain_id}"


def is_native_token(token: Optional[str]) -> bool:
    return bool(token) and token.lower() == NATIVE_TOKEN.lower()


def swap_terminal_for(chain_id: int) -> Optional[str]:
    meta = CHAIN_METADATA.get(chain_id)
    return meta["swap_terminal"] if meta else None


def usdc_for(chain_id: int) -> Optional[str]:
    meta = CHAIN_METADATA.get(chain_id)
    return meta["usdc"] if meta else None


def sucker_deployer_for(chain_id: int) -> Optional[str]:
    meta = CHAIN_METADATA.get(chain_id)
    return meta["sucker_deployer"] if meta else None


def explorer_tx_url(chain_id: int, tx_hash: str) -> Optional[str]:
    meta = CHAIN_METADATA.get(chain_id)
    if not meta:
        return None
    return f"{meta['explorer']}/tx/{tx_hash}"


def token_currency(token: str) -> int:
    """Accounting-context currency of a token: uint32(uint160(token))."""
    return int(token, 16) & 0xFFFFFFFF
