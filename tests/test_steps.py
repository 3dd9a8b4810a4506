"""Tests for the build steps and the step runner."""

from __future__ import annotations

import threading

import pytest

from lumepack.config import BuilderConfig
from lumepack.errors import LumeCommandError, LumePackError, StepError
from lumepack.steps import (
    BuildState,
    StepAction,
    StepCreateVM,
    StepSetVM,
    StepWaitIP,
    run_steps,
    wait_for_ip,
)


class RecordingUi:
    def __init__(self) -> None:
        self.said: list[str] = []
        self.messages: list[str] = []
        self.errors: list[str] = []

    def say(self, message: str) -> None:
        self.said.append(message)

    def message(self, message: str) -> None:
        self.messages.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


def _fake_lume(monkeypatch, *, fail_on: str | None = None, output: str = ''):
    calls = []

    def fake_lume_exec(args, *, sleep_s=0, ui=None, cancel=None):
        calls.append({'args': list(args), 'sleep_s': sleep_s, 'ui': ui})
        if fail_on is not None and args[0] == fail_on:
            raise LumeCommandError(['lume', *args], 'lume says no', 1)
        return output

    monkeypatch.setattr('lumepack.steps.lume_exec', fake_lume_exec)
    return calls


def _state(**kwargs) -> BuildState:
    return BuildState(config=BuilderConfig(**kwargs), ui=RecordingUi())


def test_create_args_example(monkeypatch) -> None:
    calls = _fake_lume(monkeypatch)
    state = _state(vm_name='vm1', cpu_count=2, memory_mb=4096, disk_size_gb=0)
    assert StepCreateVM().run(state) is StepAction.CONTINUE
    assert calls[0]['args'] == [
        'create',
        '--cpu',
        '2',
        '--memory',
        '4096',
        'vm1',
    ]
    assert calls[0]['ui'] is state.ui
    assert state.vm_name == 'vm1'


def test_create_all_flags_name_last(monkeypatch) -> None:
    calls = _fake_lume(monkeypatch)
    state = _state(
        vm_name='vm2', ipsw='latest', cpu_count=4, memory_mb=8192, disk_size_gb=50
    )
    StepCreateVM().run(state)
    assert calls[0]['args'] == [
        'create',
        '--ipsw',
        'latest',
        '--cpu',
        '4',
        '--memory',
        '8192',
        '--disk-size',
        '50',
        'vm2',
    ]


def test_create_grace_time_sleeps_after_success(monkeypatch) -> None:
    _fake_lume(monkeypatch)
    sleeps = []
    monkeypatch.setattr('lumepack.steps.time.sleep', sleeps.append)
    state = _state(vm_name='vm1', create_grace_time=45.0)
    assert StepCreateVM().run(state) is StepAction.CONTINUE
    assert sleeps == [45.0]
    assert any('Waiting 45s' in s for s in state.ui.said)


def test_create_failure_halts_without_sleep(monkeypatch) -> None:
    _fake_lume(monkeypatch, fail_on='create')
    sleeps = []
    monkeypatch.setattr('lumepack.steps.time.sleep', sleeps.append)
    state = _state(vm_name='vm1', create_grace_time=45.0)
    assert StepCreateVM().run(state) is StepAction.HALT
    assert isinstance(state.error, StepError)
    assert str(state.error) == 'Failed to create a VM: lume says no'
    assert state.vm_name == ''
    assert sleeps == []


def test_vm_name_recorded_once() -> None:
    state = _state(vm_name='vm1')
    state.record_vm_name('vm1')
    with pytest.raises(LumePackError):
        state.record_vm_name('vm1')


def test_set_is_noop_without_resources(monkeypatch) -> None:
    calls = _fake_lume(monkeypatch)
    state = _state(vm_name='vm1', disk_size_gb=20, ipsw='latest')
    state.record_vm_name('vm1')
    assert StepSetVM().run(state) is StepAction.CONTINUE
    assert calls == []
    assert state.ui.said == []


def test_set_args_memory_scaled(monkeypatch) -> None:
    calls = _fake_lume(monkeypatch)
    state = _state(vm_name='vm1', cpu_count=2, memory_mb=4096, display='1920x1080')
    state.record_vm_name('vm1')
    assert StepSetVM().run(state) is StepAction.CONTINUE
    assert calls[0]['args'] == [
        'set',
        'vm1',
        '--cpu',
        '2',
        '--memory',
        str(4096 * 1024),
        '--display',
        '1920x1080',
    ]


def test_set_display_only(monkeypatch) -> None:
    calls = _fake_lume(monkeypatch)
    state = _state(vm_name='vm1', display='1024x768')
    state.record_vm_name('vm1')
    StepSetVM().run(state)
    assert calls[0]['args'] == ['set', 'vm1', '--display', '1024x768']


def test_set_failure_halts(monkeypatch) -> None:
    _fake_lume(monkeypatch, fail_on='set')
    state = _state(vm_name='vm1', cpu_count=2)
    state.record_vm_name('vm1')
    assert StepSetVM().run(state) is StepAction.HALT
    assert str(state.error) == 'Error updating VM: lume says no'


def test_wait_for_ip_args_and_delay(monkeypatch) -> None:
    calls = _fake_lume(monkeypatch, output='192.168.64.5')
    ip = wait_for_ip('vm1', ['--resolver', 'arp'])
    assert ip == '192.168.64.5'
    assert calls[0]['args'] == [
        'ip',
        '--wait',
        '120',
        'vm1',
        '--resolver',
        'arp',
    ]
    assert calls[0]['sleep_s'] == 120
    assert calls[0]['ui'] is None


def test_step_wait_ip_records_address(monkeypatch) -> None:
    _fake_lume(monkeypatch, output='192.168.64.5')
    state = _state(vm_name='vm1')
    state.record_vm_name('vm1')
    assert StepWaitIP().run(state) is StepAction.CONTINUE
    assert state.ip == '192.168.64.5'


def test_step_wait_ip_failure_halts(monkeypatch) -> None:
    _fake_lume(monkeypatch, fail_on='ip')
    state = _state(vm_name='vm1')
    state.record_vm_name('vm1')
    assert StepWaitIP().run(state) is StepAction.HALT
    assert str(state.error) == 'Failed to get VM IP: lume says no'


class _FakeStep:
    def __init__(self, name, log, action=StepAction.CONTINUE):
        self.name = name
        self.log = log
        self.action = action

    def run(self, state):
        self.log.append(f'run:{self.name}')
        return self.action

    def cleanup(self, state):
        self.log.append(f'cleanup:{self.name}')


def test_run_steps_halts_and_cleans_up_in_reverse() -> None:
    log = []
    steps = [
        _FakeStep('a', log),
        _FakeStep('b', log, StepAction.HALT),
        _FakeStep('c', log),
    ]
    run_steps(steps, _state(vm_name='vm1'))
    assert log == ['run:a', 'run:b', 'cleanup:b', 'cleanup:a']


def test_run_steps_stops_when_cancelled() -> None:
    log = []
    state = _state(vm_name='vm1')
    state.cancel = threading.Event()
    state.cancel.set()
    run_steps([_FakeStep('a', log)], state)
    assert log == []
    assert state.cancelled is True
