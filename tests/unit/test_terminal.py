from unittest.mock import MagicMock, patch

import pytest

from conftest import make_cv, make_page
from cvscan import terminal
from cvscan.models import Phase, PipelineState


def _controller(state: PipelineState) -> MagicMock:
    controller = MagicMock()
    controller.state = state
    controller.wait_for_outcome.return_value = True
    return controller


class TestBuildParser:
    def test_defaults(self) -> None:
        args = terminal.build_parser().parse_args([])

        assert args.config is None
        assert args.endpoint is None
        assert args.log_level == "warning"

    def test_flags(self) -> None:
        args = terminal.build_parser().parse_args(
            ["--endpoint", "http://cv.test/scan", "--max-pages", "5", "--log-level", "debug", "--network-hint", "3g"]
        )

        assert args.endpoint == "http://cv.test/scan"
        assert args.max_pages == 5
        assert args.log_level == "debug"
        assert args.network_hint == "3g"

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(SystemExit):
            terminal.build_parser().parse_args(["--log-level", "verbose"])


class TestRunAction:
    def test_files_selected_splits_quoted_paths(self) -> None:
        controller = _controller(PipelineState(phase=Phase.FILE_SELECTION))
        controller.files_selected.return_value = []

        with patch("builtins.input", return_value='cv.pdf "my scans/page 2.png"'):
            terminal.run_action(controller, "files_selected", controller.state)

        controller.files_selected.assert_called_once_with(["cv.pdf", "my scans/page 2.png"])

    def test_retake_maps_page_number_to_id(self) -> None:
        first, second = make_page(), make_page()
        state = PipelineState(phase=Phase.REVIEWING_PAGES, pages=(first, second))
        controller = _controller(state)

        with patch("builtins.input", return_value="2"):
            terminal.run_action(controller, "retake_page", state)

        controller.retake_page.assert_called_once_with(second.id)

    def test_retake_ignores_invalid_number(self) -> None:
        state = PipelineState(phase=Phase.REVIEWING_PAGES, pages=(make_page(),))
        controller = _controller(state)

        with patch("builtins.input", return_value="7"):
            terminal.run_action(controller, "retake_page", state)

        controller.retake_page.assert_not_called()

    def test_submit_waits_for_outcome(self) -> None:
        controller = _controller(PipelineState(phase=Phase.REVIEWING_PAGES))

        terminal.run_action(controller, "submit", controller.state)

        controller.submit.assert_called_once_with()
        controller.wait_for_outcome.assert_called()

    def test_refused_submit_does_not_wait(self) -> None:
        controller = _controller(PipelineState(phase=Phase.REVIEWING_PAGES))
        controller.submit.return_value = None

        terminal.run_action(controller, "submit", controller.state)

        controller.wait_for_outcome.assert_not_called()

    def test_plain_action_dispatches_by_name(self) -> None:
        controller = _controller(PipelineState(phase=Phase.FAILED))

        terminal.run_action(controller, "revise", controller.state)

        controller.revise.assert_called_once_with()


class TestInteractiveLoop:
    def test_offers_only_listed_actions_and_exits(self, capsys) -> None:
        state = PipelineState(phase=Phase.RESULT, result=make_cv(), actions=("accept", "reset"))
        controller = _controller(state)

        with patch("builtins.input", side_effect=["9", "1", "0"]):
            terminal.interactive_loop(controller)

        controller.accept.assert_called_once_with()
        out = capsys.readouterr().out
        assert "Use This CV" in out
        assert "Invalid choice" in out
        assert "Ada Lovelace" in out


class TestMain:
    def test_invalid_config_exits_with_error(self, tmp_path, capsys) -> None:
        path = tmp_path / "cvscan.yaml"
        path.write_text("max_pages: five\n")

        assert terminal.main(["--config", str(path)]) == 2
        assert "Invalid configuration" in capsys.readouterr().out
