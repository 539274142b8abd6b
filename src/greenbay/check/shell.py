"""Shell command checks: ``shell-operation``, ``shell-operation-error`` and
``command-group-{all,any,one,none}``."""

from __future__ import annotations

from collections.abc import Mapping
from functools import partial
from typing import TYPE_CHECKING

from greenbay.check.args import ArgumentError, as_mapping_list, as_str, as_str_mapping
from greenbay.check.base import Check, CheckError
from greenbay.check.command import DEFAULT_EXECUTOR, CommandExecutor, CommandSpec, shell_argv
from greenbay.check.group import GroupMode, GroupRequirements
from greenbay.check.registry import DEFAULT_CHECK_REGISTRY, CheckRegistry

if TYPE_CHECKING:
    from greenbay.utils.concurrency import CancellationToken

SHELL_OPERATION = "shell-operation"
SHELL_OPERATION_ERROR = "shell-operation-error"


class ShellOperationCheck(Check):
    """Runs ``command`` through the platform shell and compares the outcome."""

    def __init__(
        self,
        type_name: str = SHELL_OPERATION,
        *,
        should_fail: bool = False,
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(type_name)
        self.command = ""
        self.working_directory = ""
        self.environment: dict[str, str] = {}
        self.should_fail = should_fail
        self._executor = executor if executor is not None else DEFAULT_EXECUTOR

    def hydrate(self, args: Mapping[str, object]) -> None:
        self.command = as_str(args.get("command"), "args.command")
        if not self.command.strip():
            raise ArgumentError("args.command: must not be empty")
        self.working_directory = as_str(args.get("working_directory"), "args.working_directory")
        self.environment = as_str_mapping(args.get("environment"), "args.environment")

    def to_args(self) -> dict[str, object]:
        args: dict[str, object] = {"command": self.command}
        if self.working_directory:
            args["working_directory"] = self.working_directory
        if self.environment:
            args["environment"] = dict(self.environment)
        return args

    def execute(self, cancel_token: CancellationToken) -> None:
        if not self.command.strip():
            self.set_state(False)
            self.add_error(CheckError(f"no command specified for '{self.id}' ({self.name})"))
            return

        result = self._executor.run(
            CommandSpec(
                argv=shell_argv(self.command),
                cwd=self.working_directory or None,
                env=self.environment,
            ),
            cancel_token,
        )
        succeeded = result.is_success()

        if self.should_fail:
            if succeeded:
                self.set_state(False)
                self.add_error(
                    CheckError(f"command '{self.command}' succeeded but test expects it to fail")
                )
                self.set_message(result.output)
                return
            self.set_state(True)
            return

        if not succeeded:
            self.set_state(False)
            self.add_error(
                CheckError(f"command '{self.command}' failed: {result.describe_failure()}")
            )
            self.set_message(result.output)
            return

        self.set_state(True)


class CommandGroupCheck(Check):
    """Runs several shell operations in sequence and applies a quorum to them."""

    def __init__(
        self,
        type_name: str,
        requirements: GroupRequirements,
        *,
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__(type_name)
        self.requirements = requirements
        self.commands: list[ShellOperationCheck] = []
        self._executor = executor

    def hydrate(self, args: Mapping[str, object]) -> None:
        commands: list[ShellOperationCheck] = []
        for index, raw in enumerate(as_mapping_list(args.get("commands"), "args.commands")):
            sub = ShellOperationCheck(executor=self._executor)
            try:
                sub.hydrate(raw)
            except ArgumentError as exc:
                raise ArgumentError(f"args.commands[{index}]: {exc}") from exc
            commands.append(sub)
        self.commands = commands

    def to_args(self) -> dict[str, object]:
        return {"commands": [command.to_args() for command in self.commands]}

    def execute(self, cancel_token: CancellationToken) -> None:
        self.requirements.validate()

        if not self.commands:
            self.set_state(False)
            self.add_error(
                CheckError(f"no commands specified for '{self.id}' ({self.name}) check")
            )
            return

        successes: list[ShellOperationCheck] = []
        failures: list[ShellOperationCheck] = []
        for index, command in enumerate(self.commands):
            command.set_id(f"{self.id}-{index}")
            command.run(cancel_token)
            if command.passed:
                successes.append(command)
            else:
                failures.append(command)

        if self.requirements.evaluate(len(successes), len(failures)):
            self.set_state(True)
            return

        mode = self.requirements.mode
        if mode is GroupMode.NONE:
            shown = successes
        elif mode in (GroupMode.ANY, GroupMode.ONE):
            shown = successes + failures
        else:
            shown = failures

        self.set_state(False)
        self.add_error(CheckError("group of commands do not satisfy check requirements"))
        messages: list[str] = []
        for command in shown:
            output = command.output()
            if output.message:
                messages.append(output.message)
            error = command.error()
            if error is not None:
                self.add_error(error)
        self.set_message(messages)


def register(registry: CheckRegistry = DEFAULT_CHECK_REGISTRY) -> None:
    registry.register(SHELL_OPERATION, partial(ShellOperationCheck, SHELL_OPERATION))
    registry.register(
        SHELL_OPERATION_ERROR,
        partial(ShellOperationCheck, SHELL_OPERATION_ERROR, should_fail=True),
    )
    for mode in GroupMode:
        type_name = f"command-group-{mode.value}"
        requirements = GroupRequirements.for_mode(mode, name=type_name)
        registry.register(type_name, partial(CommandGroupCheck, type_name, requirements))


__all__ = [
    "SHELL_OPERATION",
    "SHELL_OPERATION_ERROR",
    "CommandGroupCheck",
    "ShellOperationCheck",
    "register",
]
