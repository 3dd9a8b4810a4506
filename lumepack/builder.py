"""Builder: validate configuration, then run the lume step sequence."""

from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from .config import BuilderConfig
from .errors import BuildCancelledError, BuildError, ConfigError
from .results import BuildArtifact
from .steps import BuildState, StepCreateVM, StepSetVM, StepWaitIP, run_steps
from .ui import Ui

log = logger


class Builder:
    def __init__(self, config: BuilderConfig) -> None:
        self.config = config

    def prepare(self) -> None:
        errs = self.config.validate()
        if errs:
            raise ConfigError('Invalid builder config:\n  ' + '\n  '.join(errs))

    def steps(self) -> list:
        return [StepCreateVM(), StepSetVM(), StepWaitIP()]

    def run(
        self, ui: Ui, cancel: Optional[threading.Event] = None
    ) -> BuildArtifact:
        self.prepare()
        state = BuildState(
            config=self.config,
            ui=ui,
            cancel=cancel if cancel is not None else threading.Event(),
        )
        log.info('Building VM {}', self.config.vm_name)
        run_steps(self.steps(), state)
        if state.cancelled:
            raise BuildCancelledError(
                f'Build of {self.config.vm_name} was cancelled'
            )
        if state.error is not None:
            ui.error(f'Build failed: {state.error}')
            raise BuildError(str(state.error)) from state.error
        return BuildArtifact(vm_name=state.vm_name, ip=state.ip)
