"""Single deferred pass generating the build steps of declared targets."""
from __future__ import annotations

from typing import Callable, List

from .console import Console
from .engine import BuildStep
from .errors import GenerationError, PhaseError
from .init_py import InitPyGenerator
from .model import Target, TargetState
from .registry import TargetRegistry
from .scripts import ScriptGenerator

CrossCompiledGenerator = Callable[[Target], None]


class Finalizer:
    """Generates every pending target, exactly once per configuration run.

    The first generator error aborts the pass. Cross-compiled targets need
    an injected generator; without one they cannot be finalized.
    """

    def __init__(
        self,
        registry: TargetRegistry,
        scripts: ScriptGenerator,
        init_py: InitPyGenerator,
        console: Console,
        *,
        cross_compiled: CrossCompiledGenerator | None = None,
    ) -> None:
        self.registry = registry
        self.scripts = scripts
        self.init_py = init_py
        self.console = console
        self.cross_compiled = cross_compiled

    def finalize(self) -> List[str]:
        if self.registry.finalized:
            raise PhaseError("Targets were already finalized in this configuration run")
        self.registry.finalized = True

        generated: List[str] = []
        steps: List[BuildStep] = []
        for target in self.registry.pending():
            if target.kind.is_script:
                step = self.scripts.generate(target)
                if step is not None:
                    steps.append(step)
            elif target.kind.is_cross_compiled:
                if self.cross_compiled is None:
                    raise GenerationError(
                        f"No generator available for {target.kind.label} targets", uid=target.uid
                    )
                self.cross_compiled(target)
                target.state = TargetState.GENERATED
            else:
                continue
            generated.append(target.uid)

        if steps:
            self.init_py.generate(steps)
        if generated:
            self.console.debug(f"Generated build commands of {len(generated)} target(s)")
        return generated


__all__ = ["CrossCompiledGenerator", "Finalizer"]
