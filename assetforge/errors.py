from __future__ import annotations

from typing import Any, Optional


class AssetForgeError(Exception):
    """Base error. Every error carries a stable key plus human-readable parts."""

    source = "sdk"

    def __init__(
        self,
        key: str,
        title: str,
        problem: str,
        solution: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f"{title} > {problem}" + (f" {solution}" if solution else ""))
        self.key = key
        self.title = title
        self.problem = problem
        self.solution = solution
        if cause is not None:
            self.__cause__ = cause


class OperationCanceledError(AssetForgeError):
    def __init__(self, operation_key: Optional[str] = None) -> None:
        where = f" while running [{operation_key}]" if operation_key else ""
        super().__init__(
            "operation_canceled",
            "Operation Canceled",
            f"The operation was canceled{where}.",
            "Effects already accepted by the ledger are not reverted.",
        )
        self.operation_key = operation_key


class SdkError(AssetForgeError):
    source = "sdk"


class OperationHandlerMissingError(SdkError):
    def __init__(self, operation_key: str) -> None:
        super().__init__(
            "operation_handler_missing",
            "Operation Handler Missing",
            f"No operation handler was registered for the [{operation_key}] operation.",
            "Register a handler with OperationDispatcher.register before executing it.",
        )
        self.operation_key = operation_key


class OperationHandlerAlreadyRegisteredError(SdkError):
    def __init__(self, operation_key: str) -> None:
        super().__init__(
            "operation_handler_already_registered",
            "Operation Handler Already Registered",
            f"The [{operation_key}] operation already has a handler.",
        )
        self.operation_key = operation_key


class NoInstructionsToSendError(SdkError):
    def __init__(self, operation: str, solution: str = "") -> None:
        super().__init__(
            "no_instructions_to_send",
            "No Instructions To Send",
            f"The operation [{operation}] did not produce any instruction to send.",
            solution or "Check that the provided input changes something on chain.",
        )
        self.operation = operation


class UnreachableCaseError(SdkError):
    def __init__(self, value: Any) -> None:
        super().__init__(
            "unreachable_case",
            "The Case Is Unreachable",
            f"The received value [{value!r}] is not one of the supported variants.",
            "Pass one of the documented variants instead.",
        )
        self.value = value


class AccountNotFoundError(SdkError):
    def __init__(self, address: Any, account_type: Optional[str] = None, solution: str = "") -> None:
        label = f"{account_type} account" if account_type else "account"
        super().__init__(
            "account_not_found",
            "Account Not Found",
            f"The {label} at address [{address}] could not be found.",
            solution or "Ensure the provided address is correct and the account exists.",
        )
        self.address = address
        self.account_type = account_type


class UnexpectedAccountError(SdkError):
    def __init__(self, address: Any, expected_type: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            "unexpected_account",
            "Unexpected Account",
            f"The account at address [{address}] is not of type [{expected_type}].",
            "Ensure the provided address points to an account of the expected type.",
            cause=cause,
        )
        self.address = address
        self.expected_type = expected_type


class ProgramNotRecognizedError(SdkError):
    def __init__(self, name_or_address: Any, cluster: str) -> None:
        super().__init__(
            "program_not_recognized",
            "Program Not Recognized",
            f"No program matching [{name_or_address}] is registered for the [{cluster}] cluster.",
            "Register the program or pass it through the programs option.",
        )
        self.name_or_address = name_or_address
        self.cluster = cluster


class ExpectedSignerError(SdkError):
    def __init__(self, variable: str) -> None:
        super().__init__(
            "expected_signer",
            "Expected Signer",
            f"Expected [{variable}] to be a signer with a keypair but only its address is known.",
            "Provide the keypair for this account.",
        )
        self.variable = variable


class InvalidSeedsError(SdkError):
    def __init__(self, problem: str) -> None:
        super().__init__("invalid_seeds", "Invalid Seeds", problem)


class LayoutLengthError(SdkError):
    def __init__(self, field: str, length: int, limit: int) -> None:
        super().__init__(
            "layout_length",
            "Layout Length Exceeded",
            f"The [{field}] value is {length} bytes long but the account layout allows {limit}.",
        )
        self.field = field


class InvalidCreatorPositionError(SdkError):
    def __init__(self, position: int, limit: int) -> None:
        super().__init__(
            "invalid_creator_position",
            "Invalid Creator Position",
            f"Creator position {position} is outside the layout range 1..{limit}.",
        )
        self.position = position


class DelegateRoleMismatchError(SdkError):
    def __init__(self, role: Any, expected: str) -> None:
        super().__init__(
            "delegate_role_mismatch",
            "Delegate Role Mismatch",
            f"The delegate role [{role}] cannot be used as a {expected} role.",
        )
        self.role = role


class MissingInputDataError(SdkError):
    def __init__(self, missing: str, solution: str = "") -> None:
        super().__init__(
            "missing_input_data",
            "Missing Input Data",
            f"Some parameters are missing from the provided input: [{missing}].",
            solution or "Provide the missing parameters.",
        )
        self.missing = missing


class RpcError(AssetForgeError):
    source = "rpc"


class FailedToSendTransactionError(RpcError):
    def __init__(self, cause: BaseException, logs: Optional[list] = None) -> None:
        super().__init__(
            "failed_to_send_transaction",
            "Failed to Send Transaction",
            f"The transaction could not be sent: {cause}",
            "Check the program logs attached to this error.",
            cause=cause,
        )
        self.logs = list(logs or [])


class FailedToConfirmTransactionError(RpcError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            "failed_to_confirm_transaction",
            "Failed to Confirm Transaction",
            f"The transaction could not be confirmed: {cause}",
            cause=cause,
        )


class FailedToConfirmTransactionWithResponseError(RpcError):
    def __init__(self, signature: Any, err: Any) -> None:
        super().__init__(
            "failed_to_confirm_transaction_with_response",
            "Failed to Confirm Transaction",
            f"The transaction [{signature}] was confirmed with an error: {err}",
        )
        self.signature = signature
        self.err = err


class ProgramError(AssetForgeError):
    source = "program"


class ParsedProgramError(ProgramError):
    def __init__(self, program_name: str, code: int, name: str, cause: BaseException, logs: Optional[list] = None) -> None:
        super().__init__(
            "parsed_program_error",
            f"{program_name} > {name}",
            f"The program [{program_name}] failed with custom error {code} ({name}).",
            cause=cause,
        )
        self.program_name = program_name
        self.code = code
        self.name = name
        self.logs = list(logs or [])


class UnknownProgramError(ProgramError):
    def __init__(self, program_name: str, cause: BaseException, logs: Optional[list] = None) -> None:
        super().__init__(
            "unknown_program_error",
            f"{program_name} > Unknown Error",
            f"The program [{program_name}] failed with an error it does not document: {cause}",
            cause=cause,
        )
        self.program_name = program_name
        self.logs = list(logs or [])
