"""
Known-address correction.

Generated parameter sets sometimes carry a canonical contract address with a
character or two dropped. A malformed address within edit distance 3 of a
known address is mapped back to it; the caller always reports the correction
as a warning doubt.
"""

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..chains import JB_CONTRACTS
from ..execution.params import AccountingContext, TerminalConfig


ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

MAX_CORRECTION_DISTANCE = 3

KNOWN_ADDRESSES: Dict[str, str] = {address.lower(): name for name, address in JB_CONTRACTS.items()}
KNOWN_ADDRESSES.update({
    "0x4d0edd347fb1fa21589c1e109b3474924be87636": "JBTokens",
    "0x885f707efa18d2cb12f05a3a8eba6b4b26c8c1d4": "JBProjects",
    "0x7160a322fea44945a6ef9adfd65c322258df3c5e": "JBSplits",
    "0x3a46b21720c8b70184b0434a2293b2fdcc497ce7": "JBFundAccessLimits",
    "0xd4257005ca8d27bbe11f356453b0e4692414b056": "JBRulesets5_1",
})


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address))


def levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


@dataclass(frozen=True)
class AddressCorrection:
    field: str
    original: str
    corrected: str
    contract: str
    distance: int


def closest_known_address(address: str) -> Optional[Tuple[str, str, int]]:
    """(address, contract name, distance) of the nearest known address within range."""
    if not address or not address.startswith("0x"):
        return None

    normalized = address.lower()
    best: Optional[Tuple[str, str, int]] = None
    for known, name in KNOWN_ADDRESSES.items():
        distance = levenshtein(normalized, known)
        if 0 < distance <= MAX_CORRECTION_DISTANCE and (best is None or distance < best[2]):
            best = (known, name, distance)
    return best


def correct_address(address: str, field: str) -> Optional[AddressCorrection]:
    """Correction for a malformed near-miss of a known address; None otherwise."""
    if not address or address.lower() in KNOWN_ADDRESSES or is_valid_address(address):
        return None
    match = closest_known_address(address)
    if match is None:
        return None
    corrected, name, distance = match
    return AddressCorrection(field=field, original=address, corrected=corrected, contract=name, distance=distance)


def correct_terminal_configs(
    terminals: Sequence[TerminalConfig],
    prefix: str = "terminals",
) -> Tuple[List[TerminalConfig], List[AddressCorrection]]:
    """Corrected copies of ``terminals`` plus every correction made. Inputs are untouched."""
    corrected: List[TerminalConfig] = []
    corrections: List[AddressCorrection] = []

    for index, config in enumerate(terminals):
        terminal = config.terminal
        fix = correct_address(terminal, f"{prefix}[{index}].terminal")
        if fix:
            corrections.append(fix)
            terminal = fix.corrected

        contexts: List[AccountingContext] = []
        for ctx_index, context in enumerate(config.accounting_contexts):
            fix = correct_address(context.token, f"{prefix}[{index}].accounting_contexts[{ctx_index}].token")
            if fix:
                corrections.append(fix)
                context = replace(context, token=fix.corrected)
            contexts.append(context)

        corrected.append(replace(config, terminal=terminal, accounting_contexts=contexts))

    return corrected, corrections
