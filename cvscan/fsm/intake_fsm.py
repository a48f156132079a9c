import logging
from pathlib import Path

import yaml
from transitions import Machine

from cvscan.models import Phase


# Triggers fired by the pipeline itself, never offered to the user
SYSTEM_TRIGGERS = frozenset({"camera_unavailable", "succeed", "fail"})


class IntakeFSM:
    """
    Finite State Machine that sequences the CV intake flow.
    Loads its structure from states.yaml for easy modification.
    """

    def __init__(
        self,
        config_path=None,
        callbacks=None,
        camera_available=None,
        file_selection_available=None,
        page_count=None,
    ):
        """
        :param config_path: Optional path to the YAML FSM definition.
        :param callbacks: Optional dict of state entry/exit callbacks.
                          Example: {"on_enter_processing": some_function}
                          A value may also be a list of callables.
        :param camera_available: Callable returning whether a camera can be offered.
        :param file_selection_available: Callable returning whether file selection can be offered.
        :param page_count: Callable returning the number of buffered pages.
        """
        self.config_path = config_path or Path(__file__).parent / "states.yaml"
        self.callbacks = callbacks or {}
        self._camera_available = camera_available or (lambda: False)
        self._file_selection_available = file_selection_available or (lambda: True)
        self._page_count = page_count or (lambda: 0)
        self.log = logging.getLogger("IntakeFSM")

        with open(self.config_path, "r") as f:
            fsm_config = yaml.safe_load(f)

        states = fsm_config.get("states", [])
        transitions = fsm_config.get("transitions", [])
        initial = fsm_config.get("initial", Phase.CHOOSING_METHOD.value)

        self.machine = Machine(
            model=self,
            states=states,
            transitions=transitions,
            initial=initial,
            auto_transitions=False,
        )

        for name, funcs in self.callbacks.items():
            self._register_callback(name, funcs)

    def _register_callback(self, name, funcs):
        if not isinstance(funcs, (list, tuple)):
            funcs = [funcs]

        for func in funcs:
            if not callable(func):
                raise ValueError(f"Callback '{name}' must be callable, got {type(func)}")

        for kind in ("enter", "exit"):
            prefix = f"on_{kind}_"
            if name.startswith(prefix):
                state_name = name[len(prefix):]
                state = self.machine.get_state(state_name)  # ValueError on unknown state
                for func in funcs:
                    state.add_callback(kind, func)
                return

        raise ValueError(f"Callback name '{name}' should look like 'on_enter_<state>' or 'on_exit_<state>'")

    # -------------------- Condition Methods --------------------
    # These methods are referenced in states.yaml as conditions for transitions

    def is_camera_available(self):
        """A camera entry point is only offered when the probe found one."""
        return bool(self._camera_available())

    def is_file_selection_available(self):
        return bool(self._file_selection_available())

    def has_pages(self):
        """Submission needs at least one page."""
        return self._page_count() > 0

    # -------------------- Helper Methods --------------------

    @property
    def phase(self) -> Phase:
        return Phase(self.state)

    def available_actions(self):
        """User actions valid from the current state whose conditions hold."""
        guards = {
            "choose_camera": self.is_camera_available,
            "choose_files": self.is_file_selection_available,
            "submit": self.has_pages,
            "retry": self.has_pages,
        }
        actions = []
        for trigger in self.machine.get_triggers(self.state):
            if trigger in SYSTEM_TRIGGERS or trigger in actions:
                continue
            guard = guards.get(trigger)
            if guard is None or guard():
                actions.append(trigger)
        return tuple(actions)

    # Optional debugging helper
    def debug_state(self):
        self.log.debug(f"[FSM] Current state -> {self.state}")
