"""Tests for the generated controller script text."""

from __future__ import annotations

from ur_link import script

EXPECTED_DRIVER_PROGRAM = (
    "def driverProg():\n"
    "\tMULT_jointstate = 1000000\n"
    "\tSERVO_IDLE = 0\n"
    "\tSERVO_RUNNING = 1\n"
    "\tcmd_servo_state = SERVO_IDLE\n"
    "\tcmd_servo_q = [0.0, 0.0, 0.0, 0.0, 0.0, 0.0]\n"
    "\tdef set_servo_setpoint(q):\n"
    "\t\tenter_critical\n"
    "\t\tcmd_servo_state = SERVO_RUNNING\n"
    "\t\tcmd_servo_q = q\n"
    "\t\texit_critical\n"
    "\tend\n"
    "\tthread servoThread():\n"
    "\t\tstate = SERVO_IDLE\n"
    "\t\twhile True:\n"
    "\t\t\tenter_critical\n"
    "\t\t\tq = cmd_servo_q\n"
    "\t\t\tdo_brake = False\n"
    "\t\t\tif (state == SERVO_RUNNING) and (cmd_servo_state == SERVO_IDLE):\n"
    "\t\t\t\tdo_brake = True\n"
    "\t\t\tend\n"
    "\t\t\tstate = cmd_servo_state\n"
    "\t\t\tcmd_servo_state = SERVO_IDLE\n"
    "\t\t\texit_critical\n"
    "\t\t\tif do_brake:\n"
    "\t\t\t\tstopj(1.0)\n"
    "\t\t\t\tsync()\n"
    "\t\t\telif state == SERVO_RUNNING:\n"
    "\t\t\t\tservoj(q, t=0.0160, lookahead_time=0.03)\n"
    "\t\t\telse:\n"
    "\t\t\t\tsync()\n"
    "\t\t\tend\n"
    "\t\tend\n"
    "\tend\n"
    "\tsocket_open(\"10.0.0.5\", 50007)\n"
    "\tthread_servo = run servoThread()\n"
    "\tkeepalive = 1\n"
    "\twhile keepalive > 0:\n"
    "\t\tparams_mult = socket_read_binary_integer(6+1)\n"
    "\t\tif params_mult[0] > 0:\n"
    "\t\t\tq = [params_mult[1] / MULT_jointstate, params_mult[2] / MULT_jointstate, "
    "params_mult[3] / MULT_jointstate, params_mult[4] / MULT_jointstate, "
    "params_mult[5] / MULT_jointstate, params_mult[6] / MULT_jointstate]\n"
    "\t\t\tkeepalive = params_mult[7]\n"
    "\t\t\tset_servo_setpoint(q)\n"
    "\t\tend\n"
    "\tend\n"
    "\tsleep(.1)\n"
    "\tsocket_close()\n"
    "\tkill thread_servo\n"
    "end\n"
)


class TestDriverProgram:
    def test_exact_text(self) -> None:
        assert script.driver_program("10.0.0.5", 50007, 0.016) == EXPECTED_DRIVER_PROGRAM

    def test_servoj_time_formatting(self) -> None:
        program = script.driver_program("10.0.0.5", 50007, 0.008)
        assert "servoj(q, t=0.0080, lookahead_time=0.03)" in program


class TestBuilder:
    def test_nested_blocks(self) -> None:
        b = script.ScriptBuilder()
        with b.block("def f():"):
            with b.block("if x:", end=False):
                b.line("y()")
            b.line("z()")
        assert b.build() == "def f():\n\tif x:\n\t\ty()\n\tz()\nend\n"


class TestCommands:
    def test_speedj(self) -> None:
        text = script.speedj([0.1, -0.2, 0, 0, 0, 1.234567], 100.0, 0.02)
        assert text == (
            "speedj([0.10000, -0.20000, 0.00000, 0.00000, 0.00000, 1.23457], 100.000000, 0.02)\n"
        )

    def test_stopj(self) -> None:
        assert script.stopj(10) == "stopj(10)\n"

    def test_sec_wrapper(self) -> None:
        assert script.set_tool_voltage(24) == "sec setOut():\n\tset_tool_voltage(24)\nend\n"

    def test_digital_out_routing(self) -> None:
        assert "set_standard_digital_out(3, True)" in script.set_digital_out(3, True)
        assert "set_tool_digital_out(1, False)" in script.set_digital_out(9, False)
        assert "set_configurable_digital_out(2, True)" in script.set_digital_out(12, True)
        assert "\tset_digital_out(12, True)\n" in script.set_digital_out(12, True, legacy=True)

    def test_analog_out(self) -> None:
        assert "set_standard_analog_out(1, 0.5000)" in script.set_analog_out(1, 0.5)
        assert "set_analog_out(1, 0.5000)" in script.set_analog_out(1, 0.5, legacy=True)

    def test_payload_and_flag(self) -> None:
        assert "set_payload(0.250)" in script.set_payload(0.25)
        assert "set_flag(4, False)" in script.set_flag(4, False)
