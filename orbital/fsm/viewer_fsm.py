import yaml
from pathlib import Path
from transitions import Machine


class ViewerFSM:
    """
    Finite State Machine for the viewer's interaction mode.
    Loads its structure from viewer_states.yaml for easy modification.
    """

    def __init__(self, config_path=None, callbacks=None):
        """
        :param config_path: Optional path to the YAML FSM definition.
        :param callbacks: Optional dict of callbacks for state entry / exit actions.
                          Example: {"on_enter_dragging": some_function}
        """
        self.config_path = config_path or Path(__file__).parent / "viewer_states.yaml"
        self.callbacks = callbacks or {}

        with open(self.config_path, "r") as f:
            fsm_config = yaml.safe_load(f)

        states = fsm_config.get("states", [])
        transitions = fsm_config.get("transitions", [])
        initial = fsm_config.get("initial", "initializing")

        machine = Machine(
            model=self,
            states=states,
            transitions=transitions,
            initial=initial,
            auto_transitions=False,
        )

        # Register and validate callbacks
        for name, func in self.callbacks.items():
            if not callable(func):
                raise ValueError(f"Callback '{name}' must be callable, got {type(func)}")
            if name.startswith("on_enter_"):
                kind, state_name = "enter", name[len("on_enter_"):]
            elif name.startswith("on_exit_"):
                kind, state_name = "exit", name[len("on_exit_"):]
            else:
                raise ValueError(f"Callback name '{name}' should start with 'on_enter_' or 'on_exit_'")
            if state_name not in machine.states:
                raise ValueError(f"Callback '{name}' refers to unknown state '{state_name}'")
            machine.get_state(state_name).add_callback(kind, func)
            setattr(self, name, func)

        self.machine = machine

    # -------------------- Helper Methods --------------------

    def can(self, trigger_name: str) -> bool:
        """True if ``trigger_name`` is valid from the current state."""
        return trigger_name in self.machine.get_triggers(self.state)

    @property
    def is_interactive(self) -> bool:
        return self.state != "initializing"
