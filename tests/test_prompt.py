"""Tests for trunkflow.lib.prompt module."""

from unittest.mock import patch

import pytest

from trunkflow.lib.errors import OperationCanceled
from trunkflow.lib.prompt import confirm, confirm_or_cancel, prompt_index


class TestConfirm:
    @pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("", False)])
    def test_answers(self, answer, expected):
        with patch("builtins.input", return_value=answer):
            assert confirm("Continue?") is expected

    def test_default_on_empty_answer(self):
        with patch("builtins.input", return_value=""):
            assert confirm("Continue?", default=True) is True

    def test_eof_is_default(self):
        with patch("builtins.input", side_effect=EOFError):
            assert confirm("Continue?") is False

    def test_confirm_or_cancel(self):
        with patch("builtins.input", return_value="n"):
            with pytest.raises(OperationCanceled):
                confirm_or_cancel("Continue?")


class TestPromptIndex:
    def test_returns_zero_based_index(self):
        with patch("builtins.input", return_value="2"):
            assert prompt_index("Choose", 3) == 1

    def test_reasks_until_valid(self, capsys):
        with patch("builtins.input", side_effect=["x", "9", "1"]):
            assert prompt_index("Choose", 3) == 0
        out = capsys.readouterr().out
        assert "valid number" in out
        assert "between 1 and 3" in out

    def test_empty_answer_cancels(self):
        with patch("builtins.input", return_value=""):
            with pytest.raises(OperationCanceled):
                prompt_index("Choose", 3)
