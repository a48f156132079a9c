"""
Interactive CV Scanner
======================

Terminal front-end for the CV intake pipeline.
Menu-driven: only the actions valid in the current phase are offered.

Usage:
    cvscan
    cvscan --endpoint http://localhost:3001/api/v1/cv/scan --log-level debug
    cvscan --config cvscan.yaml
"""

import argparse
import logging
import shlex
import sys

from loguru import logger

from cvscan.config import load_settings
from cvscan.models import Phase
from cvscan.pipeline import IntakeController


LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

# Color codes for terminal output
class Colors:
    HEADER = '\033[95m'
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


MENU_LABELS = {
    "choose_camera": "Scan with Camera",
    "choose_files": "Upload from Device",
    "capture_frame": "Capture Page",
    "finish_capturing": "Done Capturing",
    "files_selected": "Enter File Paths",
    "retake_page": "Retake / Remove a Page",
    "cancel": "Back",
    "submit": "Process CV",
    "retry": "Retry Processing",
    "revise": "Edit Pages",
    "accept": "Use This CV",
    "reset": "Start Over",
}

PHASE_COLORS = {
    Phase.RESULT: Colors.OKGREEN,
    Phase.FAILED: Colors.FAIL,
    Phase.PROCESSING: Colors.WARNING,
}


def configure_logging(level_name: str) -> None:
    level = LOG_LEVELS[level_name]
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.remove()
    logger.add(sys.stderr, level=logging.getLevelName(level))


def print_header(text):
    """Print a styled header."""
    print(f"\n{Colors.HEADER}{Colors.BOLD}{'='*60}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{text.center(60)}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{'='*60}{Colors.ENDC}\n")


def display_state(state):
    """Display phase, device info and captured pages."""
    color = PHASE_COLORS.get(state.phase, Colors.OKBLUE)
    print(f"\n{Colors.BOLD}Phase:{Colors.ENDC} {color}{state.phase.value}{Colors.ENDC}")

    profile = state.profile
    if profile is not None:
        line = f"Optimized for your device - {profile.screen.width}x{profile.screen.height}"
        if profile.is_low_power_device:
            line += " - Battery saving mode"
        print(f"  {Colors.OKCYAN}{line}{Colors.ENDC}")

    if state.notice:
        print(f"  {Colors.WARNING}{state.notice}{Colors.ENDC}")

    if state.pages:
        print(f"  Captured Pages ({state.page_count}):")
        for number, page in enumerate(state.pages, start=1):
            hint = ""
            if page.quality is not None and not page.quality.acceptable:
                hint = f" {Colors.WARNING}[{', '.join(page.quality.issues)}]{Colors.ENDC}"
            name = page.filename or f"{page.source.value} capture"
            print(f"    {number}. {name}{hint}")

    if state.failure is not None:
        print(f"  {Colors.FAIL}✗ {state.failure.message} ({state.failure.error_kind.value}){Colors.ENDC}")


def display_result(cv):
    print_header("CV Successfully Processed!")
    print(f"Confidence Score: {Colors.OKGREEN}{round(cv.confidence_score * 100)}%{Colors.ENDC}\n")

    print(f"{Colors.BOLD}Personal Details{Colors.ENDC}")
    for key in ("name", "email", "phone", "address"):
        if cv.personal_info.get(key):
            print(f"  {key.title()}: {cv.personal_info[key]}")

    print(f"\n{Colors.BOLD}Summary{Colors.ENDC}\n  {cv.summary}")
    print(f"\n{Colors.BOLD}Skills{Colors.ENDC}\n  {', '.join(cv.skills)}")

    if cv.work_history:
        print(f"\n{Colors.BOLD}Experience{Colors.ENDC}")
        for job in cv.work_history[:2]:
            print(f"  {job.get('title', '')} - {job.get('company', '')} ({job.get('duration', '')})")

    if cv.improvement_suggestions:
        print(f"\n{Colors.BOLD}AI Suggestions{Colors.ENDC}")
        for suggestion in cv.improvement_suggestions:
            print(f"  • {suggestion}")


def ask_page_id(state):
    choice = input("Page number to remove: ").strip()
    try:
        return state.pages[int(choice) - 1].id
    except (ValueError, IndexError):
        print(f"{Colors.FAIL}Invalid page number{Colors.ENDC}")
        return None


def wait_for_processing(controller):
    print(f"{Colors.OKCYAN}Our AI is extracting and analyzing your information...{Colors.ENDC}")
    while not controller.wait_for_outcome(timeout=5.0):
        print(f"{Colors.OKCYAN}Still working...{Colors.ENDC}")


def run_action(controller, action, state):
    if action == "files_selected":
        raw = input("File paths (space separated, quote paths with spaces): ").strip()
        added = controller.files_selected(shlex.split(raw))
        print(f"{Colors.OKGREEN}Added {len(added)} page(s){Colors.ENDC}")
    elif action == "retake_page":
        page_id = ask_page_id(state)
        if page_id is not None:
            controller.retake_page(page_id)
    elif action in ("submit", "retry"):
        if getattr(controller, action)() is not None:
            wait_for_processing(controller)
    elif action == "accept":
        cv = controller.accept()
        if cv is not None:
            print(f"{Colors.OKGREEN}CV accepted for {cv.personal_info.get('name', 'your profile')}{Colors.ENDC}")
    else:
        getattr(controller, action)()


def interactive_loop(controller):
    while True:
        state = controller.state
        display_state(state)

        if state.phase is Phase.RESULT and state.result is not None:
            display_result(state.result)

        actions = list(state.actions)
        print(f"\n{Colors.OKCYAN}{Colors.BOLD}Actions:{Colors.ENDC}")
        for number, action in enumerate(actions, start=1):
            print(f"  {Colors.OKBLUE}{number}.{Colors.ENDC} {MENU_LABELS.get(action, action)}")
        print(f"  {Colors.FAIL}0.{Colors.ENDC} Exit\n")

        choice = input(f"{Colors.BOLD}Enter your choice: {Colors.ENDC}").strip()
        if choice == "0":
            return
        try:
            action = actions[int(choice) - 1]
        except (ValueError, IndexError):
            print(f"\n{Colors.FAIL}Invalid choice. Please try again.{Colors.ENDC}")
            continue

        run_action(controller, action, state)


def build_parser():
    parser = argparse.ArgumentParser(description="CV Scanner - capture and analyse CV pages")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--endpoint", help="CV analysis endpoint URL")
    parser.add_argument("--max-pages", type=int, help="Maximum number of pages per CV")
    parser.add_argument("--network-hint", help="Connection type hint (slow-2g, 2g, 3g, 4g, wifi)")
    parser.add_argument("--log-level", choices=sorted(LOG_LEVELS), default="warning",
                        help="Logging verbosity (default: warning)")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = load_settings(args.config).with_overrides(
            endpoint_url=args.endpoint,
            max_pages=args.max_pages,
            network_hint=args.network_hint,
        )
    except (OSError, ValueError) as e:
        print(f"{Colors.FAIL}Invalid configuration: {e}{Colors.ENDC}")
        return 2

    print_header("CV Scanner")

    try:
        with IntakeController(settings) as controller:
            interactive_loop(controller)
    except KeyboardInterrupt:
        print(f"\n\n{Colors.WARNING}Interrupted by user{Colors.ENDC}")

    print(f"\n{Colors.OKGREEN}Goodbye!{Colors.ENDC}\n")
    return 0


if __name__ == '__main__':
    sys.exit(main())
