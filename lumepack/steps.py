"""Build steps: create the VM, apply resource settings, wait for its IP."""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from loguru import logger

from .config import BuilderConfig
from .errors import LumePackError, StepError
from .runtime import create_args, ip_args, set_args
from .ui import Ui
from .util import lume_exec

log = logger

IP_PRE_DELAY_S = 120


class StepAction(enum.Enum):
    CONTINUE = 'continue'
    HALT = 'halt'


@dataclass
class BuildState:
    """State shared by the build steps of a single run."""

    config: BuilderConfig
    ui: Ui
    cancel: threading.Event = field(default_factory=threading.Event)
    vm_name: str = ''
    ip: str = ''
    error: Optional[Exception] = None
    cancelled: bool = False

    def record_vm_name(self, name: str) -> None:
        if self.vm_name:
            raise LumePackError(
                f'VM name already recorded as {self.vm_name!r}; refusing {name!r}'
            )
        self.vm_name = name


class Step(Protocol):
    def run(self, state: BuildState) -> StepAction: ...

    def cleanup(self, state: BuildState) -> None: ...


def wait_for_ip(
    vm_name: str,
    extra_args: Sequence[str] = (),
    *,
    cancel: Optional[threading.Event] = None,
) -> str:
    """Ask lume for the VM address, after a fixed pre-delay.

    lume itself bounds the wait (``--wait 120``); nothing here retries.
    """
    log.debug('Waiting for VM IP: {}', vm_name)
    return lume_exec(
        ip_args(vm_name, extra_args), sleep_s=IP_PRE_DELAY_S, cancel=cancel
    )


class StepCreateVM:
    def run(self, state: BuildState) -> StepAction:
        cfg = state.config
        ui = state.ui
        ui.say('Creating virtual machine...')
        args = create_args(
            cfg.vm_name,
            ipsw=cfg.ipsw,
            cpu_count=cfg.cpu_count,
            memory_mb=cfg.memory_mb,
            disk_size_gb=cfg.disk_size_gb,
        )
        try:
            lume_exec(args, ui=ui, cancel=state.cancel)
        except (LumePackError, OSError) as ex:
            state.error = StepError(f'Failed to create a VM: {ex}')
            return StepAction.HALT
        state.record_vm_name(cfg.vm_name)
        if cfg.create_grace_time > 0:
            ui.say(
                f'Waiting {cfg.create_grace_time:g}s to let the Virtualization.Framework '
                'installation process finish correctly...'
            )
            time.sleep(cfg.create_grace_time)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        pass


class StepSetVM:
    def run(self, state: BuildState) -> StepAction:
        cfg = state.config
        if not (cfg.cpu_count > 0 or cfg.memory_mb > 0 or cfg.display):
            return StepAction.CONTINUE
        state.ui.say('Updating virtual machine resources...')
        args = set_args(
            state.vm_name or cfg.vm_name,
            cpu_count=cfg.cpu_count,
            memory_mb=cfg.memory_mb,
            display=cfg.display,
        )
        try:
            lume_exec(args, ui=state.ui, cancel=state.cancel)
        except (LumePackError, OSError) as ex:
            state.error = StepError(f'Error updating VM: {ex}')
            return StepAction.HALT
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        pass


class StepWaitIP:
    def run(self, state: BuildState) -> StepAction:
        state.ui.say('Waiting for the VM to report an IP address...')
        try:
            ip = wait_for_ip(
                state.vm_name,
                state.config.ip_extra_args,
                cancel=state.cancel,
            )
        except (LumePackError, OSError) as ex:
            state.error = StepError(f'Failed to get VM IP: {ex}')
            return StepAction.HALT
        state.ip = ip
        state.ui.say(f'VM IP address: {ip}')
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        pass


def run_steps(steps: Sequence[Step], state: BuildState) -> BuildState:
    """Run steps in order, stopping at the first halt or on cancellation.

    Every step that was started has ``cleanup`` called, in reverse order.
    """
    started: list[Step] = []
    try:
        for step in steps:
            if state.cancel.is_set():
                log.info('Build cancelled before {}', type(step).__name__)
                state.cancelled = True
                break
            started.append(step)
            log.debug('Running step {}', type(step).__name__)
            action = step.run(state)
            if action is StepAction.HALT:
                log.debug(
                    'Step {} halted: {}', type(step).__name__, state.error
                )
                if state.cancel.is_set():
                    state.cancelled = True
                break
    finally:
        for step in reversed(started):
            step.cleanup(state)
    return state
