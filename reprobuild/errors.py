"""reprobuild exception hierarchy.

Composition (source filtering, overlay folding, dependency assembly) is total
and never raises these. They all originate while preparing or running a build.
"""

from __future__ import annotations


class ReproBuildError(RuntimeError):
    """Base exception for all fatal build errors."""

    def __init__(self, message: str = "", *, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class IntegrityError(ReproBuildError):
    """Lock file disagrees with the live dependency declarations."""


class MissingDependencyError(ReproBuildError):
    """A required package is absent from the platform's package set."""

    def __init__(self, name: str, system: str) -> None:
        super().__init__(f"Required package {name!r} is not available for {system}")
        self.name = name
        self.system = system


class BuildError(ReproBuildError):
    """Compilation or installation failed inside the sandbox."""


class TestFailure(BuildError):
    """The automated test run exited non-zero."""

    __test__ = False


class ArtifactGenerationError(ReproBuildError):
    """A post-install artifact command failed or produced no output."""
