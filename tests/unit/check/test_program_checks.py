"""
greenbay - unit tests for compile and program checks

File: tests/unit/check/test_program_checks.py

Purpose
- Validate compile, program-output and program-return checks and the
  temporary source lifecycle of the compiler families.

Functional requirements
- C and Go builds are exercised through a scripted executor; interpreted
  programs run under the current Python interpreter.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from conftest import FakeExecutor, FakeOutcome

from greenbay.check.command import shell_argv
from greenbay.check.compilers import (
    CompilerError,
    GccCompiler,
    GoCompiler,
    ScriptCompiler,
    UndefinedCompiler,
    resolve_binary,
    temporary_source,
)
from greenbay.check.programs import CompileCheck, ProgramOutputCheck, ProgramReturnCheck

PYTHON = sys.executable


def _python() -> ScriptCompiler:
    return ScriptCompiler(PYTHON, extension="py")


def test_temporary_source_is_removed_on_exit() -> None:
    with temporary_source("int main(void) { return 0; }\n", "c") as body:
        assert body.path.exists()
        assert body.path.suffix == ".c"
        assert body.path.name.startswith("testBody_")
        directory = body.path.parent

    assert not directory.exists()


def test_temporary_source_is_removed_when_body_raises() -> None:
    with pytest.raises(RuntimeError), temporary_source("x", "go") as body:
        directory = body.path.parent
        raise RuntimeError("boom")

    assert not directory.exists()


def test_resolve_binary_handles_paths_and_names() -> None:
    assert resolve_binary(PYTHON) == PYTHON
    assert resolve_binary("/definitely/not/here/gcc") is None
    assert resolve_binary("") is None


def test_program_output_matches_trimmed_output() -> None:
    check = ProgramOutputCheck("run-program-system-python", _python)
    check.hydrate({"source": "print('  hello  ')\n", "output": "hello\n"})
    check.set_id("hello")

    check.run()

    assert check.passed, check.output().error


def test_program_output_mismatch_shows_expected_and_actual() -> None:
    check = ProgramOutputCheck("run-program-system-python", _python)
    check.hydrate({"source": "print('goodbye')", "output": "hello"})
    check.set_id("mismatch")

    check.run()

    output = check.output()
    assert not output.passed
    assert output.error == "expected output does not match actual output"
    lines = output.message.splitlines()
    assert lines[1] == "hello"
    assert lines[3] == "goodbye"
    assert "EXPECTED" in lines[0]
    assert "ACTUAL" in lines[2]


def test_program_output_requires_expected_output() -> None:
    check = ProgramOutputCheck("run-program-system-python", _python)
    check.hydrate({"source": "print(1)"})
    check.set_id("empty")

    check.run()

    assert not check.passed
    assert "can't be empty" in check.output().error


def test_program_return_check_uses_exit_status() -> None:
    ok = ProgramReturnCheck("run-sh-script-succeeds", _python)
    ok.hydrate({"source": "print('ignored')"})
    bad = ProgramReturnCheck("run-sh-script-succeeds", _python)
    bad.hydrate({"source": "import sys\nsys.exit(2)\n"})

    ok.run()
    bad.run()

    assert ok.passed
    assert not bad.passed
    assert bad.output().error == "program did not exit 0"


def test_missing_interpreter_fails_validation() -> None:
    check = ProgramReturnCheck(
        "run-zsh-script-succeeds", lambda: ScriptCompiler("/no/such/zsh", extension="sh")
    )
    check.hydrate({"source": "true"})

    check.run()

    assert not check.passed
    assert "failed to validate compiler" in check.output().error


def test_compile_check_builds_with_flags_from_command() -> None:
    cflags_command = "pkg-config --cflags libgreen"
    executor = FakeExecutor(
        {shell_argv(cflags_command): FakeOutcome(output="-I/opt/green/include\n")},
        default=FakeOutcome(exit_code=0),
    )
    check = CompileCheck(
        "compile-gcc-system",
        lambda: GccCompiler(PYTHON, executor=executor),
        executor=executor,
    )
    check.hydrate(
        {
            "source": "int main(void) { return 0; }",
            "cflags": ["-O2"],
            "cflags_command": cflags_command,
        }
    )
    check.set_id("build")

    check.run()

    assert check.passed, check.output().error
    build = executor.argvs[-1]
    assert build[0] == PYTHON
    assert "-Werror" in build
    assert "-c" in build
    assert build[-2:] == ("-I/opt/green/include", "-O2")


def test_compile_and_run_reports_program_output_on_failure() -> None:
    executor = FakeExecutor(default=FakeOutcome(exit_code=1, output="segfault"))
    compiler = GccCompiler(PYTHON, executor=executor)
    check = CompileCheck(
        "compile-and-run-gcc-system", lambda: compiler, should_run=True, executor=executor
    )
    check.hydrate({"source": "int main(void) { return 1; }"})
    check.set_id("run")

    check.run()

    output = check.output()
    assert not output.passed
    assert "problem compiling test" in output.error
    assert output.message == "segfault"


def test_compile_check_fails_for_missing_binary() -> None:
    check = CompileCheck("compile-toolchain-v2", lambda: GccCompiler("/no/such/gcc"))
    check.hydrate({"source": "int main(void) { return 0; }"})

    check.run()

    assert not check.passed
    assert "compiler binary '/no/such/gcc' does not exist" in check.output().error


def test_go_compiler_runs_in_source_directory_with_path_prefix() -> None:
    executor = FakeExecutor(default=FakeOutcome(exit_code=0, output="ok\n"))
    compiler = GoCompiler(PYTHON, path_prefix="/opt/toolchain/bin", executor=executor)

    output = compiler.compile_and_run("package main\n")

    assert output == "ok"
    call = executor.calls[0]
    assert call.argv[:2] == (PYTHON, "run")
    assert call.cwd == str(Path(call.argv[2]).parent)
    assert call.env["PATH"].startswith("/opt/toolchain/bin")


def test_undefined_compiler_always_fails_validation() -> None:
    compiler = UndefinedCompiler("compile-visual-studio")

    with pytest.raises(CompilerError, match="is not defined on this platform"):
        compiler.validate()

    check = CompileCheck("compile-visual-studio", lambda: compiler)
    check.run()
    assert not check.passed
