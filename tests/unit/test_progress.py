from __future__ import annotations

from unittest.mock import patch

from import_validator.services.progress import RowProgress, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    """is_tty_enabled mirrors sys.stdout.isatty()."""
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestRowProgress:
    """Test cases for RowProgress."""

    def test_init_with_tty_enabled(self):
        with patch('import_validator.services.progress.is_tty_enabled', return_value=True), \
             patch('import_validator.services.progress.tqdm') as mock_tqdm:

            progress = RowProgress(120, description="Validating users")

            assert progress.enabled is True
            mock_tqdm.assert_called_once_with(
                total=120,
                desc="Validating users",
                unit="row",
                leave=True,
                ncols=80,
                ascii=True,
            )

    def test_init_without_tty_has_no_bar(self):
        with patch('import_validator.services.progress.is_tty_enabled', return_value=False), \
             patch('import_validator.services.progress.tqdm') as mock_tqdm:

            progress = RowProgress(120)

            assert progress.enabled is False
            assert progress.pbar is None
            mock_tqdm.assert_not_called()

    def test_call_advances_by_line_delta(self):
        with patch('import_validator.services.progress.is_tty_enabled', return_value=True), \
             patch('import_validator.services.progress.tqdm') as mock_tqdm:
            bar = mock_tqdm.return_value
            progress = RowProgress(100)

            progress(10)
            progress(25)
            progress(20)  # never moves backwards

            assert [c.args[0] for c in bar.update.call_args_list] == [10, 15]
            assert progress.current_line == 25

    def test_set_postfix_and_context_manager_close(self):
        with patch('import_validator.services.progress.is_tty_enabled', return_value=True), \
             patch('import_validator.services.progress.tqdm') as mock_tqdm:
            bar = mock_tqdm.return_value

            with RowProgress(10) as progress:
                progress.set_postfix(rejected=2)

            bar.set_postfix.assert_called_once_with(rejected=2)
            bar.close.assert_called_once()
            assert progress.pbar is None

    def test_disabled_progress_ignores_calls(self):
        with patch('import_validator.services.progress.is_tty_enabled', return_value=False):
            progress = RowProgress(10)
            progress(5)
            progress.set_postfix(rejected=1)
            progress.close()
            assert progress.current_line == 5
