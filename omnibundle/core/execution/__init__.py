"""
Chain Execution Layer

Everything needed to run one operation on one chain:
- CallBuilder: Encodes the canonical Juicebox call for each operation kind
- TerminalResolver: Finds the terminal/controller a call is sent to
- PermitSigner: Authorizes ERC-20 spends via Permit2 or direct approval
- ERC2771Forwarder: Wraps calls in signed forward requests for relaying
- SingleChainExecutor: Drives one chain from signing to confirmation

Usage:
    from omnibundle.core.execution import (
        OperationKind,
        OperationRequest,
        PayParams,
        SingleChainExecutor,
        LocalAccountWallet,
    )

    request = OperationRequest(
        kind=OperationKind.PAY,
        chain_ids=[8453],
        project_ids={8453: 12},
        params=PayParams(amount=10**18, beneficiary="0x..."),
    )

    wallet = LocalAccountWallet.from_key(private_key, rpc)
    executor = SingleChainExecutor(wallet, rpc)
    result = await executor.execute(request, 8453)
"""

from .errors import (
    OmnibundleError,
    RemoteServiceError,
    MalformedParameters,
    TerminalNotFound,
    AllowanceSigningFailed,
    AllowanceApprovalFailed,
    UserRejected,
    Cancelled,
    SubmissionFailed,
    RelayInconsistency,
    InsufficientBalance,
    AcknowledgementRequired,
    UnknownBundle,
    BundleStateError,
    is_user_rejection,
)

from .params import (
    SplitConfig,
    SplitGroup,
    CurrencyAmount,
    FundAccessLimitGroup,
    RulesetMetadata,
    RulesetConfig,
    AccountingContext,
    TerminalConfig,
    RevnetStage,
    LoanSource,
    RevnetLoan,
    BuybackPool,
    BuybackHookConfig,
    TokenMapping,
    SuckerDeployerConfig,
    Tier721Config,
    ProtocolFee,
    PayParams,
    CashOutParams,
    UseAllowanceParams,
    QueueRulesetParams,
    LaunchProjectParams,
    DeployRevnetParams,
    DeploySuckersParams,
    AdjustTiersParams,
)

from .models import (
    ChainStatus,
    OperationKind,
    OperationRequest,
    PreparedCall,
    AuthorizationPath,
    ChainExecutionResult,
)

from .call_builder import (
    CallBuilder,
    encode_function,
)

from .defaults import (
    synchronized_start_time,
    sucker_salt,
    default_sucker_deployers,
    default_terminal_configs,
)

from .terminal_resolver import (
    TerminalResolver,
)

from .signers import (
    SigningBackend,
    WalletSigner,
    LocalAccountWallet,
    ManagedSigner,
)

from .permit import (
    PermitSigner,
    AllowanceSignature,
    AllowanceAttempt,
    build_permit2_metadata,
)

from .forwarder import (
    ERC2771Forwarder,
    ForwardRequest,
)

from .executor import (
    SingleChainExecutor,
)

__all__ = [
    # Errors
    "OmnibundleError",
    "RemoteServiceError",
    "MalformedParameters",
    "TerminalNotFound",
    "AllowanceSigningFailed",
    "AllowanceApprovalFailed",
    "UserRejected",
    "Cancelled",
    "SubmissionFailed",
    "RelayInconsistency",
    "InsufficientBalance",
    "AcknowledgementRequired",
    "UnknownBundle",
    "BundleStateError",
    "is_user_rejection",
    # Params
    "SplitConfig",
    "SplitGroup",
    "CurrencyAmount",
    "FundAccessLimitGroup",
    "RulesetMetadata",
    "RulesetConfig",
    "AccountingContext",
    "TerminalConfig",
    "RevnetStage",
    "LoanSource",
    "RevnetLoan",
    "BuybackPool",
    "BuybackHookConfig",
    "TokenMapping",
    "SuckerDeployerConfig",
    "Tier721Config",
    "ProtocolFee",
    "PayParams",
    "CashOutParams",
    "UseAllowanceParams",
    "QueueRulesetParams",
    "LaunchProjectParams",
    "DeployRevnetParams",
    "DeploySuckersParams",
    "AdjustTiersParams",
    # Models
    "ChainStatus",
    "OperationKind",
    "OperationRequest",
    "PreparedCall",
    "AuthorizationPath",
    "ChainExecutionResult",
    # Call Builder
    "CallBuilder",
    "encode_function",
    # Defaults
    "synchronized_start_time",
    "sucker_salt",
    "default_sucker_deployers",
    "default_terminal_configs",
    # Resolver
    "TerminalResolver",
    # Signers
    "SigningBackend",
    "WalletSigner",
    "LocalAccountWallet",
    "ManagedSigner",
    # Permit
    "PermitSigner",
    "AllowanceSignature",
    "AllowanceAttempt",
    "build_permit2_metadata",
    # Forwarder
    "ERC2771Forwarder",
    "ForwardRequest",
    # Executor
    "SingleChainExecutor",
]
