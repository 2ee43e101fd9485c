"""
Builders for the URScript text sent to the controller.

The controller interprets this text itself, so every emitted character
(tabs, spacing, number formatting) is part of the contract.
"""

from contextlib import contextmanager
from typing import List, Sequence

from .reverse import MULT_JOINTSTATE

# Seconds the remote servo loop looks ahead when smoothing setpoints
SERVOJ_LOOKAHEAD = "0.03"


class ScriptBuilder:
    """
    Accumulates tab-indented script lines.

    `block()` writes a header line, indents its body and, unless told
    otherwise, closes it with `end`.
    """

    def __init__(self, indent: str = "\t"):
        self.indent = indent
        self.level = 0
        self.lines: List[str] = []

    def line(self, text: str) -> 'ScriptBuilder':
        self.lines.append(self.indent * self.level + text)
        return self

    @contextmanager
    def block(self, header: str, end: bool = True):
        self.line(header)
        self.level += 1
        try:
            yield self
        finally:
            self.level -= 1
        if end:
            self.line("end")

    def build(self) -> str:
        return "\n".join(self.lines) + "\n"


def driver_program(reverse_ip: str, reverse_port: int, servoj_time: float) -> str:
    """
    Program that connects back to the reverse port and servoes to each
    setpoint frame it reads until a frame carries keepalive 0.
    """
    b = ScriptBuilder()
    with b.block("def driverProg():"):
        b.line(f"MULT_jointstate = {MULT_JOINTSTATE}")
        b.line("SERVO_IDLE = 0")
        b.line("SERVO_RUNNING = 1")
        b.line("cmd_servo_state = SERVO_IDLE")
        b.line("cmd_servo_q = [0.0, 0.0, 0.0, 0.0, 0.0, 0.0]")

        with b.block("def set_servo_setpoint(q):"):
            b.line("enter_critical")
            b.line("cmd_servo_state = SERVO_RUNNING")
            b.line("cmd_servo_q = q")
            b.line("exit_critical")

        with b.block("thread servoThread():"):
            b.line("state = SERVO_IDLE")
            with b.block("while True:"):
                b.line("enter_critical")
                b.line("q = cmd_servo_q")
                b.line("do_brake = False")
                with b.block("if (state == SERVO_RUNNING) and (cmd_servo_state == SERVO_IDLE):"):
                    b.line("do_brake = True")
                b.line("state = cmd_servo_state")
                b.line("cmd_servo_state = SERVO_IDLE")
                b.line("exit_critical")
                with b.block("if do_brake:", end=False):
                    b.line("stopj(1.0)")
                    b.line("sync()")
                with b.block("elif state == SERVO_RUNNING:", end=False):
                    b.line(f"servoj(q, t={servoj_time:.4f}, lookahead_time={SERVOJ_LOOKAHEAD})")
                with b.block("else:"):
                    b.line("sync()")

        b.line(f"socket_open(\"{reverse_ip}\", {int(reverse_port)})")
        b.line("thread_servo = run servoThread()")
        b.line("keepalive = 1")
        with b.block("while keepalive > 0:"):
            b.line("params_mult = socket_read_binary_integer(6+1)")
            with b.block("if params_mult[0] > 0:"):
                joints = ", ".join(f"params_mult[{i}] / MULT_jointstate" for i in range(1, 7))
                b.line(f"q = [{joints}]")
                b.line("keepalive = params_mult[7]")
                b.line("set_servo_setpoint(q)")
        b.line("sleep(.1)")
        b.line("socket_close()")
        b.line("kill thread_servo")
    return b.build()


def sec_program(statement: str) -> str:
    """Wrap one statement in a secondary program, which runs without interrupting motion."""
    b = ScriptBuilder()
    with b.block("sec setOut():"):
        b.line(statement)
    return b.build()


def _bool(value: bool) -> str:
    return "True" if value else "False"


def speedj(speeds: Sequence[float], acceleration: float, time: float) -> str:
    joints = ", ".join(f"{s:1.5f}" for s in speeds)
    return f"speedj([{joints}], {acceleration:f}, {time:g})\n"


def stopj(deceleration: float) -> str:
    return f"stopj({deceleration:g})\n"


def set_tool_voltage(voltage: int) -> str:
    return sec_program(f"set_tool_voltage({int(voltage)})")


def set_flag(n: int, value: bool) -> str:
    return sec_program(f"set_flag({int(n)}, {_bool(value)})")


def set_digital_out(n: int, value: bool, legacy: bool = False) -> str:
    """
    Pins 0-7 are standard outputs, 8-9 tool outputs and 10+ configurable
    outputs. Legacy (pre 2.0) firmware only knows set_digital_out.
    """
    n = int(n)
    if legacy:
        statement = f"set_digital_out({n}, {_bool(value)})"
    elif n > 9:
        statement = f"set_configurable_digital_out({n - 10}, {_bool(value)})"
    elif n > 7:
        statement = f"set_tool_digital_out({n - 8}, {_bool(value)})"
    else:
        statement = f"set_standard_digital_out({n}, {_bool(value)})"
    return sec_program(statement)


def set_analog_out(n: int, value: float, legacy: bool = False) -> str:
    name = "set_analog_out" if legacy else "set_standard_analog_out"
    return sec_program(f"{name}({int(n)}, {value:1.4f})")


def set_payload(mass: float) -> str:
    return sec_program(f"set_payload({mass:1.3f})")
