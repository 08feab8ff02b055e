"""Tests for the interactive menu."""

import pytest

from conftest import FakeOps
from launcher.menu import EXIT, MENU_CHOICES, choose_command, parse_choice, render_menu
from launcher.models import DependencyStatus, RunningServiceInfo


class TestParseChoice:

    @pytest.mark.parametrize("raw,expected", [
        ("1", "dev"),
        (" 4 ", "prod"),
        ("5", "build"),
        ("6", "install"),
        ("7", "stop"),
        ("8", "status"),
        ("0", EXIT),
        ("", "dev"),
    ])
    def test_valid_choices(self, raw, expected):
        assert parse_choice(raw) == expected

    @pytest.mark.parametrize("raw", ["9", "dev", "-1", "1 2"])
    def test_invalid_choices(self, raw):
        assert parse_choice(raw) is None

    def test_every_choice_is_unique(self):
        numbers = [number for number, _, _ in MENU_CHOICES]
        assert len(numbers) == len(set(numbers))


class TestRenderMenu:

    def test_plain_rendering(self, settings):
        deps = DependencyStatus(venv=True, backend=False, frontend=None)
        running = [
            RunningServiceInfo("backend", 5001, frozenset({42})),
            RunningServiceInfo("frontend", 5173, frozenset()),
        ]
        text = render_menu(settings, "/usr/bin/python3", deps, running, color_enabled=False)

        assert "\033[" not in text
        assert "Python:        /usr/bin/python3" in text
        assert "Backend deps:  not installed" in text
        assert "Frontend deps" not in text
        assert "backend (5001): running (PID: 42)" in text
        assert "frontend (5173): not running" in text
        assert "DS2API_ADMIN_KEY: ds2api" in text
        assert "  7. Stop all services" in text

    def test_frontend_status_shown_when_applicable(self, settings):
        deps = DependencyStatus(venv=False, backend=False, frontend=True)
        text = render_menu(settings, None, deps, [], color_enabled=False)
        assert "Frontend deps: installed" in text
        assert "Python:        not found" in text
        assert "not created" in text


class TestChooseCommand:

    def test_reprompts_until_valid(self, settings, capsys):
        answers = iter(["x", "42", "8"])
        command = choose_command(settings, FakeOps(), color_enabled=False, read=lambda prompt: next(answers))

        assert command == "status"
        out = capsys.readouterr().out
        assert out.count("Invalid choice") == 2
        assert "DS2API Launcher" in out

    def test_empty_input_defaults_to_dev(self, settings):
        assert choose_command(settings, FakeOps(), color_enabled=False, read=lambda prompt: "") == "dev"
