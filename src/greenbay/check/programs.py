"""Compile, program-output and program-return checks over the compiler families."""

from __future__ import annotations

from collections.abc import Mapping
from functools import partial
from typing import TYPE_CHECKING

from greenbay.check.args import as_str, as_str_list
from greenbay.check.base import Check, CheckError
from greenbay.check.command import DEFAULT_EXECUTOR, CommandExecutor, CommandSpec, shell_argv
from greenbay.check.compilers import (
    CompilerError,
    CompilerFactory,
    go_compilers,
    native_compilers,
    script_compilers,
)
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

_RULE_EXPECTED = "-------------------- EXPECTED --------------------"
_RULE_ACTUAL = "-------------------- ACTUAL --------------------"


class CompileCheck(Check):
    """``compile-*`` (build only) and ``compile-and-run-*`` (build then execute)."""

    def __init__(
        self,
        type_name: str,
        compiler_factory: CompilerFactory,
        *,
        should_run: bool = False,
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(type_name)
        self.source = ""
        self.cflags: list[str] = []
        self.cflags_command = ""
        self.should_run = should_run
        self.compiler = compiler_factory()
        self._executor = executor if executor is not None else DEFAULT_EXECUTOR

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.source = as_str(args.get("source"), "args.source")
        self.cflags = as_str_list(args.get("cflags"), "args.cflags")
        self.cflags_command = as_str(args.get("cflags_command"), "args.cflags_command")

    def to_args(self) -> dict[str, object]:
        args: dict[str, object] = {"source": self.source}
        if self.cflags:
            args["cflags"] = list(self.cflags)
        if self.cflags_command:
            args["cflags_command"] = self.cflags_command
        return args

    def resolve_flags(self, cancel_token: CancellationToken) -> list[str]:
        flags: list[str] = []
        if self.cflags_command:
            result = self._executor.run(
                CommandSpec(argv=shell_argv(self.cflags_command)), cancel_token
            )
            if not result.is_success():
                raise CheckError(
                    f"cflags command '{self.cflags_command}' failed: "
                    f"{result.describe_failure()}"
                )
            flags.extend(result.output.split())
        flags.extend(self.cflags)
        return flags

    def execute(self, cancel_token: CancellationToken) -> None:
        try:
            self.compiler.validate()
        except CompilerError as exc:
            self.set_state(False)
            self.add_error(exc)
            return

        flags = self.resolve_flags(cancel_token)

        try:
            if self.should_run:
                self.compiler.compile_and_run(self.source, flags, cancel_token=cancel_token)
            else:
                self.compiler.compile(self.source, flags, cancel_token=cancel_token)
        except CompilerError as exc:
            self.set_state(False)
            self.add_error(exc)
            if self.should_run:
                self.set_message(exc.output)
            return

        self.set_state(True)


class ProgramOutputCheck(Check):
    """Builds and runs ``source`` and compares its trimmed output to ``output``."""

    def __init__(self, type_name: str, compiler_factory: CompilerFactory) -> None:
        super().__init__(type_name)
        self.source = ""
        self.expected_output = ""
        self.compiler = compiler_factory()

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.source = as_str(args.get("source"), "args.source")
        self.expected_output = as_str(args.get("output"), "args.output")

    def to_args(self) -> dict[str, object]:
        return {"source": self.source, "output": self.expected_output}

    def execute(self, cancel_token: CancellationToken) -> None:
        try:
            self.compiler.validate()
        except CompilerError as exc:
            self.set_state(False)
            self.add_error(exc)
            return

        if not self.expected_output:
            self.set_state(False)
            self.add_error(CheckError(f"expected output for check '{self.id}' can't be empty"))
            return

        expected = self.expected_output.strip("\r\t\n ")
        try:
            actual = self.compiler.compile_and_run(self.source, cancel_token=cancel_token)
        except CompilerError as exc:
            self.set_state(False)
            self.add_error(exc)
            self.set_message(exc.output)
            return

        if actual != expected:
            self.set_state(False)
            self.add_error(CheckError("expected output does not match actual output"))
            self.set_message([_RULE_EXPECTED, expected, _RULE_ACTUAL, actual])
            return

        self.set_state(True)


class ProgramReturnCheck(Check):
    """Passes when the script exits zero; output is ignored."""

    def __init__(self, type_name: str, compiler_factory: CompilerFactory) -> None:
        super().__init__(type_name)
        self.source = ""
        self.compiler = compiler_factory()

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.source = as_str(args.get("source"), "args.source")

    def to_args(self) -> dict[str, object]:
        return {"source": self.source}

    def execute(self, cancel_token: CancellationToken) -> None:
        try:
            self.compiler.validate()
        except CompilerError as exc:
            self.set_state(False)
            self.add_error(CheckError(f"failed to validate compiler: {exc}"))
            return

        try:
            self.compiler.compile_and_run(self.source, cancel_token=cancel_token)
        except CompilerError as exc:
            self.set_state(False)
            self.add_error(CheckError("program did not exit 0"))
            self.set_message([str(exc)])
            return

        self.set_state(True)


def register(
    registry: CheckRegistry = DEFAULT_CHECK_REGISTRY,
    *,
    executor: CommandExecutor | None = None,
) -> None:
    compiled = {**native_compilers(executor), **go_compilers(executor)}
    scripts = script_compilers(executor)

    for name, factory in compiled.items():
        run_name = name.replace("compile-", "compile-and-run-", 1)
        registry.register(
            name, partial(CompileCheck, name, factory, should_run=False, executor=executor)
        )
        registry.register(
            run_name,
            partial(CompileCheck, run_name, factory, should_run=True, executor=executor),
        )

    for name, factory in {**compiled, **scripts}.items():
        output_name = name.replace("compile-", "run-program-", 1)
        registry.register(output_name, partial(ProgramOutputCheck, output_name, factory))

    for name, factory in scripts.items():
        if "-script" in name:
            return_name = name.replace("-script", "-script-succeeds", 1)
            registry.register(return_name, partial(ProgramReturnCheck, return_name, factory))


__all__ = [
    "CompileCheck",
    "ProgramOutputCheck",
    "ProgramReturnCheck",
    "register",
]
