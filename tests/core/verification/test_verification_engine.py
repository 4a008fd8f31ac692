"""
Tests for the transaction verification engine.

Covers doubt ordering, purity, the submission gate and address correction.
"""

import pytest

from omnibundle.core.chains import JB_CONTRACTS, MAX_UINT112, NATIVE_TOKEN, ZERO_ADDRESS
from omnibundle.core.execution import (
    AccountingContext,
    DeployRevnetParams,
    LaunchProjectParams,
    OperationKind,
    OperationRequest,
    PayParams,
    ProtocolFee,
    QueueRulesetParams,
    RevnetStage,
    RulesetConfig,
    RulesetMetadata,
    SplitConfig,
    SplitGroup,
    TerminalConfig,
)
from omnibundle.core.verification import (
    DoubtSeverity,
    GateLabel,
    SubmissionGate,
    TransactionDoubt,
    VerificationContext,
    correct_address,
    correct_request,
    levenshtein,
    verify,
    verify_request,
)


OWNER = "0x1234567890123456789012345678901234567890"
MULTI_TERMINAL = JB_CONTRACTS["JBMultiTerminal"]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def terminals():
    return [TerminalConfig(terminal=MULTI_TERMINAL, accounting_contexts=[AccountingContext()])]


@pytest.fixture
def launch_params(terminals) -> LaunchProjectParams:
    """A launch with nothing worth flagging."""
    return LaunchProjectParams(
        owner=OWNER,
        project_uri="ipfs://QmProject",
        rulesets=[RulesetConfig(weight=10**18)],
        terminals=terminals,
    )


def _messages(doubts):
    return [doubt.message for doubt in doubts]


# =============================================================================
# Ordering and purity
# =============================================================================

class TestOrderingAndPurity:
    """verify() is deterministic and lists critical doubts first."""

    def test_clean_launch_has_no_doubts(self, launch_params):
        assert verify(OperationKind.LAUNCH_PROJECT, launch_params, chain_ids=[1, 10]) == []

    def test_critical_doubts_come_first(self, launch_params):
        """The unsupported-chain warning is found before the zero owner, but listed after it."""
        params = LaunchProjectParams(
            owner=ZERO_ADDRESS,
            project_uri="",
            rulesets=launch_params.rulesets,
            terminals=launch_params.terminals,
        )

        doubts = verify(OperationKind.LAUNCH_PROJECT, params, chain_ids=[1, 999])

        severities = [doubt.severity for doubt in doubts]
        assert severities == sorted(severities, key=lambda s: s != DoubtSeverity.CRITICAL)
        assert doubts[0].field == "owner"
        assert "Unsupported chain ID: 999" in _messages(doubts)
        assert "Project metadata URI is empty" in _messages(doubts)

    def test_identical_inputs_give_identical_output(self):
        params = PayParams(amount=0, beneficiary=ZERO_ADDRESS)
        context = VerificationContext(balances={1: 5}, now=1_700_000_000)

        first = verify(OperationKind.PAY, params, chain_ids=[1, 1], project_ids={1: 0}, context=context)
        second = verify(OperationKind.PAY, params, chain_ids=[1, 1], project_ids={1: 0}, context=context)

        assert first == second
        assert len(first) > 0

    def test_inputs_are_not_mutated(self, launch_params):
        project_ids = {1: 4}
        context = VerificationContext(balances={1: 10}, now=100)

        verify(OperationKind.QUEUE_RULESET, QueueRulesetParams(rulesets=launch_params.rulesets),
               chain_ids=[1], project_ids=project_ids, context=context)

        assert project_ids == {1: 4}
        assert dict(context.balances) == {1: 10}


# =============================================================================
# Rules
# =============================================================================

class TestPayRules:
    """Checks on pay parameters."""

    def test_zero_beneficiary_is_critical(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=10, beneficiary=ZERO_ADDRESS),
                        chain_ids=[1], project_ids={1: 3})
        assert doubts[0].severity == DoubtSeverity.CRITICAL
        assert doubts[0].field == "beneficiary"

    def test_missing_project_id_is_critical(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=10, beneficiary=OWNER), chain_ids=[8453])
        assert doubts == [TransactionDoubt(
            DoubtSeverity.CRITICAL,
            "Invalid project ID on Base",
            "project_ids",
            "Project ID must be a positive integer",
        )]

    def test_zero_amount_is_warning(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=0, beneficiary=OWNER),
                        chain_ids=[1], project_ids={1: 3})
        assert [d.severity for d in doubts] == [DoubtSeverity.WARNING]
        assert doubts[0].message == "Payment amount is zero"

    def test_large_native_amount_is_warning(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=1001 * 10**18, beneficiary=OWNER),
                        chain_ids=[1], project_ids={1: 3})
        assert doubts[0].severity == DoubtSeverity.WARNING
        assert doubts[0].message.startswith("Large payment amount")

    def test_amount_above_uint256_is_critical(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=2**256, beneficiary=OWNER),
                        chain_ids=[1], project_ids={1: 3})
        assert doubts[0].severity == DoubtSeverity.CRITICAL

    def test_insufficient_balance_includes_fee(self):
        params = PayParams(
            amount=100,
            beneficiary=OWNER,
            fee=ProtocolFee(project_id=1, amount=5, beneficiary=OWNER),
        )
        context = VerificationContext(balances={1: 104, 10: 105})

        doubts = verify(OperationKind.PAY, params, chain_ids=[1, 10], project_ids={1: 3, 10: 3}, context=context)

        assert _messages(doubts) == ["Insufficient balance on Ethereum"]
        assert doubts[0].technical_note == "Need 105 wei, have 104 wei"

    def test_unknown_balance_is_not_flagged(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=100, beneficiary=OWNER),
                        chain_ids=[1], project_ids={1: 3}, context=VerificationContext())
        assert doubts == []

    def test_invalid_address_format_is_critical(self):
        doubts = verify(OperationKind.PAY, PayParams(amount=1, beneficiary="0x1234"),
                        chain_ids=[1], project_ids={1: 3})
        assert doubts[0].message == "Invalid beneficiary address format"


class TestRulesetRules:
    """Checks on ruleset configurations."""

    def _verify(self, rulesets, now=None):
        return verify(
            OperationKind.QUEUE_RULESET,
            QueueRulesetParams(rulesets=rulesets),
            chain_ids=[1],
            project_ids={1: 7},
            context=VerificationContext(now=now),
        )

    def test_empty_rulesets_is_critical(self):
        doubts = self._verify([])
        assert _messages(doubts) == ["At least one ruleset configuration is required"]

    def test_weight_above_uint112_is_critical(self):
        doubts = self._verify([RulesetConfig(weight=MAX_UINT112 + 1)])
        assert doubts[0].field == "rulesets[0].weight"
        assert doubts[0].is_critical

    def test_high_reserved_percent_is_warning(self):
        doubts = self._verify([RulesetConfig(weight=1, metadata=RulesetMetadata(reserved_percent=6000))])
        assert _messages(doubts) == ["High reserved percentage: 60.0%"]
        assert not doubts[0].is_critical

    def test_reserved_percent_at_half_is_fine(self):
        assert self._verify([RulesetConfig(weight=1, metadata=RulesetMetadata(reserved_percent=5000))]) == []

    def test_start_in_past_is_warning(self):
        doubts = self._verify([RulesetConfig(weight=1, must_start_at_or_after=100)], now=200)
        assert _messages(doubts) == ["Ruleset start time is in the past"]

    def test_start_not_checked_without_clock(self):
        assert self._verify([RulesetConfig(weight=1, must_start_at_or_after=100)]) == []

    def test_overallocated_split_group_is_critical(self):
        group = SplitGroup(group_id=1, splits=[
            SplitConfig(percent=600_000_000, beneficiary=OWNER),
            SplitConfig(percent=500_000_000, beneficiary=OWNER),
        ])
        doubts = self._verify([RulesetConfig(weight=1, split_groups=[group])])
        assert _messages(doubts) == ["Split percentages sum to 110.0%"]
        assert doubts[0].is_critical

    def test_split_to_nowhere_is_critical(self):
        group = SplitGroup(group_id=1, splits=[SplitConfig(percent=100)])
        doubts = self._verify([RulesetConfig(weight=1, split_groups=[group])])
        assert _messages(doubts) == ["Split has no beneficiary and no project"]

    def test_split_to_project_is_fine(self):
        group = SplitGroup(group_id=1, splits=[SplitConfig(percent=100, project_id=5)])
        assert self._verify([RulesetConfig(weight=1, split_groups=[group])]) == []


class TestRevnetRules:
    """Checks on revnet deployments."""

    def _params(self, **overrides):
        values = dict(
            name="Revnet",
            ticker="REV",
            split_operator=OWNER,
            stages=[RevnetStage(starts_at_or_after=0, split_percent=200_000_000, initial_issuance=10**18)],
            terminals=[TerminalConfig(terminal=MULTI_TERMINAL)],
        )
        values.update(overrides)
        return DeployRevnetParams(**values)

    def test_clean_revnet(self):
        assert verify(OperationKind.DEPLOY_REVNET, self._params(), chain_ids=[1]) == []

    def test_missing_name_and_zero_operator_are_critical(self):
        doubts = verify(OperationKind.DEPLOY_REVNET, self._params(name=" ", split_operator=ZERO_ADDRESS),
                        chain_ids=[1])
        assert _messages(doubts) == ["Revnet name is required", "Split operator is zero address"]

    def test_high_stage_percents_are_warnings(self):
        stage = RevnetStage(
            starts_at_or_after=0,
            split_percent=600_000_000,
            initial_issuance=1,
            issuance_decay_percent=700_000_000,
        )
        doubts = verify(OperationKind.DEPLOY_REVNET, self._params(stages=[stage]), chain_ids=[1])
        assert _messages(doubts) == ["High operator split: 60.0%", "High issuance decay: 70.0%"]
        assert all(d.severity == DoubtSeverity.WARNING for d in doubts)

    def test_empty_terminals_is_critical(self):
        doubts = verify(OperationKind.DEPLOY_REVNET, self._params(terminals=[]), chain_ids=[1])
        assert _messages(doubts) == ["At least one terminal configuration is required"]


def test_duplicate_chains_warned():
    doubts = verify(OperationKind.QUEUE_RULESET, QueueRulesetParams(rulesets=[RulesetConfig(weight=1)]),
                    chain_ids=[1, 1], project_ids={1: 2})
    assert _messages(doubts) == ["Duplicate chain IDs detected"]


def test_past_synchronized_start_warned(launch_params):
    doubts = verify(
        OperationKind.LAUNCH_PROJECT,
        launch_params,
        chain_ids=[1, 10],
        synchronized_start=50,
        context=VerificationContext(now=100),
    )
    assert _messages(doubts) == ["Synchronized start time is in the past"]


# =============================================================================
# Gate
# =============================================================================

class TestSubmissionGate:
    """Acknowledgement required for the doubts raised."""

    def test_no_doubts_submits_immediately(self):
        gate = SubmissionGate.for_doubts([])
        assert gate.requires_acknowledgement is False
        assert gate.allows(False)

    def test_warnings_need_review(self):
        gate = SubmissionGate.for_doubts([TransactionDoubt(DoubtSeverity.WARNING, "w")])
        assert gate.label == GateLabel.REVIEW
        assert not gate.allows(False)
        assert gate.allows(True)

    def test_critical_needs_risk_acceptance(self):
        gate = SubmissionGate.for_doubts([
            TransactionDoubt(DoubtSeverity.WARNING, "w"),
            TransactionDoubt(DoubtSeverity.CRITICAL, "c"),
        ])
        assert gate.label == GateLabel.RISK_ACCEPTANCE
        assert not gate.allows(False)


# =============================================================================
# Address correction
# =============================================================================

class TestAddressCorrection:
    """Near-miss canonical addresses are corrected and always reported."""

    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_dropped_character_corrected(self):
        broken = MULTI_TERMINAL[:-1]
        correction = correct_address(broken, "terminals[0].terminal")
        assert correction.corrected == MULTI_TERMINAL
        assert correction.contract == "JBMultiTerminal"
        assert correction.distance == 1

    def test_valid_addresses_never_corrected(self):
        assert correct_address(OWNER, "owner") is None
        assert correct_address(MULTI_TERMINAL.upper().replace("0X", "0x"), "terminal") is None

    def test_far_addresses_not_corrected(self):
        assert correct_address("0xdeadbeef", "terminal") is None

    def test_correction_reported_as_warning(self, launch_params):
        params = LaunchProjectParams(
            owner=OWNER,
            project_uri="ipfs://x",
            rulesets=launch_params.rulesets,
            terminals=[TerminalConfig(terminal=MULTI_TERMINAL[:-1])],
        )
        doubts = verify(OperationKind.LAUNCH_PROJECT, params, chain_ids=[1])
        assert _messages(doubts) == ["Address auto-corrected to JBMultiTerminal"]
        assert doubts[0].severity == DoubtSeverity.WARNING

    @pytest.mark.parametrize("field", ["beneficiary", "token"])
    def test_near_miss_outside_terminals_stays_critical(self, field):
        """Only terminal configs are rewritten, so nothing else may be downgraded to a warning."""
        values = {"beneficiary": OWNER, "token": NATIVE_TOKEN, field: MULTI_TERMINAL[:-1]}
        params = PayParams(amount=10**15, **values)

        doubts = verify(OperationKind.PAY, params, chain_ids=[1], project_ids={1: 12})

        assert [(d.severity, d.field) for d in doubts] == [(DoubtSeverity.CRITICAL, field)]
        assert doubts[0].message.startswith("Invalid")
        assert SubmissionGate.for_doubts(doubts).label == GateLabel.RISK_ACCEPTANCE

    def test_near_miss_split_beneficiary_stays_critical(self):
        split = SplitConfig(percent=10**8, beneficiary=MULTI_TERMINAL[:-1])
        ruleset = RulesetConfig(weight=1, split_groups=[SplitGroup(group_id=1, splits=[split])])
        params = QueueRulesetParams(rulesets=[ruleset])

        doubts = verify(OperationKind.QUEUE_RULESET, params, chain_ids=[1], project_ids={1: 12})

        assert [d.message for d in doubts] == ["Invalid split beneficiary address format"]
        assert doubts[0].is_critical

    def test_correct_request_copies(self, launch_params):
        params = LaunchProjectParams(
            owner=OWNER,
            project_uri="ipfs://x",
            rulesets=launch_params.rulesets,
            terminals=[TerminalConfig(
                terminal=MULTI_TERMINAL[:-1],
                accounting_contexts=[AccountingContext(token=NATIVE_TOKEN)],
            )],
        )
        request = OperationRequest(kind=OperationKind.LAUNCH_PROJECT, chain_ids=[1, 10], params=params)

        corrected, corrections = correct_request(request)

        assert [c.field for c in corrections] == ["terminals[0].terminal"]
        assert corrected.params.terminals[0].terminal == MULTI_TERMINAL
        assert request.params.terminals[0].terminal == MULTI_TERMINAL[:-1]
        assert verify_request(corrected) == []

    def test_correct_request_noop_for_other_kinds(self):
        request = OperationRequest(
            kind=OperationKind.PAY,
            chain_ids=[1],
            project_ids={1: 1},
            params=PayParams(amount=1, beneficiary=OWNER),
        )
        corrected, corrections = correct_request(request)
        assert corrected is request
        assert corrections == []
