import logging
import unittest
from unittest.mock import Mock

from flowstate.core.config import MachineConfig
from flowstate.core.errors import ConfigurationError, InvalidHandlerError, ResolverError
from flowstate.core.machine.machine_status import MachineStatus
from flowstate.core.machine.state_machine import StateMachine
from flowstate.core.registry import HandlerKey

WIZARD = [
    "next: intro > settings > summary",
    "back: summary > settings > intro",
    {"name": "finish", "from": "summary", "to": "final"},
    {"name": "restart", "from": "summary", "to": "intro"},
]


class TestConstruction(unittest.TestCase):
    """Test cases for building a machine from configuration."""

    def test_default_initial_state(self):
        """Test that the first discovered state is the initial state."""
        fsm = StateMachine({"events": [{"name": "next", "from": "a", "to": "b"}]})
        self.assertEqual(fsm.state, "a")
        self.assertEqual(fsm.config.initial, "a")

    def test_explicit_initial_state(self):
        """Test an explicit initial state."""
        fsm = StateMachine(MachineConfig(events=WIZARD, initial="summary"))
        self.assertEqual(fsm.state, "summary")

    def test_config_not_mutated(self):
        """Test that the caller's config keeps its own initial value."""
        config = MachineConfig(events=WIZARD)
        fsm = StateMachine(config)
        self.assertIsNone(config.initial)
        self.assertEqual(fsm.config.initial, "intro")

    def test_tables(self):
        """Test the compiled tables exposed by the machine."""
        fsm = StateMachine({"events": WIZARD})
        self.assertEqual(fsm.states, ["intro", "settings", "summary", "final"])
        self.assertEqual(fsm.transitions["summary"], ["back", "finish", "restart"])
        self.assertEqual(fsm.actions[("next", "intro")].state, "settings")

    def test_deferred(self):
        """Test that defer leaves the machine unstarted."""
        initialize = Mock()
        fsm = StateMachine({"events": WIZARD, "defer": True, "handlers": {"system.initialize": initialize}})
        self.assertEqual(fsm.state, "")
        self.assertFalse(fsm.is_started())
        self.assertEqual(fsm.status, MachineStatus.NOT_STARTED)
        initialize.assert_not_called()
        self.assertFalse(fsm.do("next"))
        self.assertFalse(fsm.go("settings"))
        self.assertFalse(fsm.is_started())

        fsm.reset()
        self.assertEqual(fsm.state, "intro")
        self.assertTrue(fsm.is_started())

    def test_initialize_event(self):
        """Test that system.initialize fires once, after handlers are added."""
        initialize = Mock()
        fsm = StateMachine({"events": WIZARD, "handlers": {"system.initialize": initialize}})
        initialize.assert_called_once()
        event = initialize.call_args[0][0]
        self.assertEqual(event.path, "system.initialize")
        self.assertEqual(event.state, "intro")
        self.assertIs(event.machine, fsm)

    def test_handler_lists(self):
        """Test that a handler map value may be a list."""
        first, second = Mock(), Mock()
        fsm = StateMachine({"events": WIZARD, "handlers": {"change": [first, second]}})
        fsm.do("next")
        first.assert_called_once()
        second.assert_called_once()

    def test_malformed_shorthand(self):
        """Test that a malformed rule aborts construction."""
        with self.assertRaises(ConfigurationError):
            StateMachine({"events": ["next intro > settings"]})

    def test_invalid_handler(self):
        """Test that a non-callable configured handler aborts construction."""
        with self.assertRaises(InvalidHandlerError):
            StateMachine({"events": WIZARD, "handlers": {"change": "not callable"}})

    def test_ungrammatical_handler_id(self):
        """Test that an ungrammatical handler id aborts construction."""
        with self.assertRaises(ConfigurationError):
            StateMachine({"events": WIZARD, "handlers": {"bogus.change": Mock()}})

    def test_empty_machine(self):
        """Test a machine built without configuration."""
        fsm = StateMachine()
        self.assertEqual(fsm.states, [])
        self.assertFalse(fsm.is_started())
        fsm.add("next", "a", "b").reset("a")
        self.assertTrue(fsm.do("next"))
        self.assertEqual(fsm.state, "b")


class TestQueries(unittest.TestCase):
    """Test cases for query operations."""

    def setUp(self):
        """Set up test fixtures."""
        self.resolver = Mock(return_value="final")
        self.fsm = StateMachine(
            {
                "events": WIZARD + [{"name": "skip", "from": "settings", "to": self.resolver}],
                "final": "final",
            }
        )

    def test_can(self):
        """Test can/cannot against the current state."""
        self.assertTrue(self.fsm.can("next"))
        self.assertFalse(self.fsm.can("back"))
        self.assertTrue(self.fsm.cannot("finish"))
        self.assertFalse(self.fsm.can("unknown"))

    def test_is_state_and_has(self):
        """Test state comparison and existence."""
        self.assertTrue(self.fsm.is_state("intro"))
        self.assertFalse(self.fsm.is_state("summary"))
        self.assertFalse(self.fsm.is_state("nowhere"))
        self.assertTrue(self.fsm.has("final"))
        self.assertFalse(self.fsm.has("nowhere"))

    def test_get_actions_for(self):
        """Test listing actions for the current and a given state."""
        self.assertEqual(self.fsm.get_actions_for(), ["next"])
        self.assertEqual(self.fsm.get_actions_for("summary"), ["back", "finish", "restart"])
        self.assertEqual(
            self.fsm.get_actions_for("summary", as_map=True),
            {"back": "settings", "finish": "final", "restart": "intro"},
        )
        self.assertEqual(self.fsm.get_actions_for("nowhere"), [])

    def test_get_states_for(self):
        """Test listing reachable targets, including resolvers."""
        self.assertEqual(self.fsm.get_states_for(), ["settings"])
        self.assertEqual(self.fsm.get_states_for("settings"), ["summary", "intro", self.resolver])
        self.resolver.assert_not_called()

    def test_get_action_for_state(self):
        """Test the reverse lookup from the current state."""
        self.assertEqual(self.fsm.get_action_for_state("settings"), "next")
        self.assertIsNone(self.fsm.get_action_for_state("summary"))
        self.assertIsNone(self.fsm.get_action_for_state("nowhere"))

    def test_flags(self):
        """Test the status flags of an idle machine."""
        self.assertTrue(self.fsm.is_started())
        self.assertFalse(self.fsm.is_transitioning())
        self.assertFalse(self.fsm.is_paused())
        self.assertFalse(self.fsm.is_complete())
        self.assertEqual(self.fsm.status, MachineStatus.IDLE)

    def test_no_final_state(self):
        """Test that a machine without a final state never completes."""
        fsm = StateMachine({"events": WIZARD})
        fsm.reset("final")
        self.assertFalse(fsm.is_complete())


class TestCommands(unittest.TestCase):
    """Test cases for do/go and transition control."""

    def setUp(self):
        """Set up test fixtures."""
        self.fsm = StateMachine({"events": WIZARD, "final": "final"})
        self.paths = []
        for event_id in [
            "transition.start",
            "transition.pause",
            "transition.resume",
            "transition.cancel",
            "transition.end",
            "leave",
            "enter",
            "start",
            "end",
            "change",
            "complete",
            "reset",
        ]:
            self.fsm.on(event_id, lambda e: self.paths.append(e.path))

    def test_do(self):
        """Test a complete transition and its notification order."""
        self.assertTrue(self.fsm.do("next"))
        self.assertEqual(self.fsm.state, "settings")
        self.assertEqual(
            self.paths,
            [
                "transition.start",
                "state.intro.leave",
                "action.next.start",
                "state.settings.enter",
                "action.next.end",
                "system.change",
            ],
        )

    def test_do_rejected(self):
        """Test that unavailable actions return False without events."""
        self.assertFalse(self.fsm.do("finish"))
        self.assertFalse(self.fsm.do("unknown"))
        self.assertEqual(self.fsm.state, "intro")
        self.assertEqual(self.paths, [])

    def test_do_while_transitioning(self):
        """Test that a second action is refused while one is in flight."""
        self.fsm.on("leave:intro", lambda e: self.fsm.pause())
        self.fsm.do("next")
        self.assertTrue(self.fsm.is_transitioning())
        self.assertFalse(self.fsm.do("next"))

    def test_complete(self):
        """Test that reaching the final state emits system.complete."""
        self.fsm.reset("summary")
        self.paths.clear()
        self.fsm.do("finish")
        self.assertTrue(self.fsm.is_complete())
        self.assertEqual(self.fsm.status, MachineStatus.COMPLETE)
        self.assertEqual(self.paths[-2:], ["system.change", "system.complete"])

    def test_go(self):
        """Test go() picks the action leading to the state."""
        self.assertTrue(self.fsm.go("settings"))
        self.assertEqual(self.fsm.state, "settings")
        self.assertTrue(self.fsm.go("intro"))
        self.assertEqual(self.fsm.state, "intro")

    def test_go_rejected(self):
        """Test go() without a route or to an unknown state."""
        self.assertFalse(self.fsm.go("summary"))
        self.assertFalse(self.fsm.go("nowhere"))
        self.assertEqual(self.fsm.state, "intro")

    def test_pause_resume(self):
        """Test pausing from a handler and resuming later."""
        self.fsm.on("leave:intro", lambda e: self.fsm.pause())
        self.fsm.do("next")
        self.assertTrue(self.fsm.is_paused())
        self.assertEqual(self.fsm.status, MachineStatus.PAUSED)
        self.assertEqual(self.fsm.state, "intro")
        self.assertEqual(self.paths, ["transition.start", "transition.pause"])

        self.fsm.resume()
        self.assertFalse(self.fsm.is_transitioning())
        self.assertEqual(self.fsm.state, "settings")
        self.assertEqual(
            self.paths[2:],
            [
                "transition.resume",
                "state.intro.leave",
                "action.next.start",
                "state.settings.enter",
                "action.next.end",
                "system.change",
            ],
        )

    def test_cancel(self):
        """Test that cancel restores the source state and stops handlers."""
        self.fsm.on("start:next", lambda e: self.fsm.cancel())
        self.fsm.do("next")
        self.assertEqual(self.fsm.state, "intro")
        self.assertFalse(self.fsm.is_transitioning())
        self.assertEqual(
            self.paths,
            ["transition.start", "state.intro.leave", "transition.cancel"],
        )

    def test_cancel_after_commit(self):
        """Test that cancel reverts even after the state was committed."""
        self.fsm.on("enter:settings", lambda e: self.fsm.cancel())
        self.fsm.do("next")
        self.assertEqual(self.fsm.state, "intro")
        self.assertNotIn("action.next.end", self.paths)
        self.assertNotIn("system.change", self.paths)

    def test_end(self):
        """Test that end commits the target and skips remaining handlers."""
        self.fsm.on("leave:intro", lambda e: self.fsm.pause())
        self.fsm.do("next")
        self.paths.clear()
        self.fsm.end()
        self.assertEqual(self.fsm.state, "settings")
        self.assertFalse(self.fsm.is_transitioning())
        self.assertEqual(self.paths, ["transition.end", "system.change"])

    def test_end_into_final(self):
        """Test that ending into the final state emits system.complete."""
        self.fsm.reset("summary")
        self.fsm.on("leave:summary", lambda e: self.fsm.end())
        self.paths.clear()
        self.fsm.do("finish")
        self.assertEqual(self.fsm.state, "final")
        self.assertEqual(
            self.paths,
            ["transition.start", "transition.end", "system.change", "system.complete"],
        )

    def test_controls_without_transition(self):
        """Test that controls are no-ops when idle."""
        self.assertIs(self.fsm.pause(), self.fsm)
        self.fsm.resume().cancel().end()
        self.assertEqual(self.fsm.state, "intro")
        self.assertEqual(self.paths, [])

    def test_reset(self):
        """Test reset discards the transition and emits system.reset."""
        self.fsm.on("leave:intro", lambda e: self.fsm.pause())
        self.fsm.do("next")
        transition = self.fsm.transition
        self.paths.clear()
        self.fsm.reset()
        self.assertEqual(self.fsm.state, "intro")
        self.assertFalse(self.fsm.is_transitioning())
        self.assertFalse(transition.is_active)
        self.assertEqual(self.paths, ["system.reset"])

    def test_reset_to_state(self):
        """Test reset to an explicit state."""
        self.fsm.reset("final")
        self.assertTrue(self.fsm.is_complete())
        self.fsm.reset()
        self.assertFalse(self.fsm.is_complete())

    def test_resolver(self):
        """Test a dynamic target chosen from do() arguments."""
        self.fsm.add("jump", "intro", lambda fsm, target: target)
        self.assertTrue(self.fsm.do("jump", "summary"))
        self.assertEqual(self.fsm.state, "summary")

    def test_resolver_failure(self):
        """Test that a failing resolver leaves the machine untouched."""
        self.fsm.add("jump", "intro", lambda fsm: "nowhere")
        with self.assertRaises(ResolverError):
            self.fsm.do("jump")
        self.assertEqual(self.fsm.state, "intro")
        self.assertFalse(self.fsm.is_transitioning())
        self.assertEqual(self.paths, [])


class TestHandlers(unittest.TestCase):
    """Test cases for on/off and handler id resolution."""

    def setUp(self):
        """Set up test fixtures."""
        self.fsm = StateMachine({"events": WIZARD})

    def test_state_name_id(self):
        """Test that a bare state name subscribes to state.<name>.leave."""
        handler = Mock()
        self.fsm.on("intro", handler)
        self.assertEqual(self.fsm.handlers.handlers_for(HandlerKey.state("intro", "leave")), [handler])

    def test_action_name_id(self):
        """Test that a bare action name subscribes to action.<name>.end."""
        handler = Mock()
        self.fsm.on("next", handler)
        self.assertEqual(self.fsm.handlers.handlers_for(HandlerKey.action("next", "end")), [handler])

    def test_at_id(self):
        """Test that @name subscribes to action.<name>.start."""
        handler = Mock()
        self.fsm.on("@next", handler)
        self.assertEqual(self.fsm.handlers.handlers_for(HandlerKey.action("next", "start")), [handler])

    def test_multiple_targets(self):
        """Test one entry per listed target."""
        handler = Mock()
        self.fsm.on("enter:(settings summary)", handler)
        self.fsm.do("next")
        self.fsm.do("next")
        self.assertEqual([c[0][0].target for c in handler.call_args_list], ["settings", "summary"])

    def test_wildcard(self):
        """Test that the wildcard receives concrete targets."""
        handler = Mock()
        self.fsm.on("state.enter", handler)
        self.fsm.do("next")
        self.assertEqual(handler.call_args[0][0].target, "settings")

    def test_unresolved_id(self):
        """Test that an unmappable id attaches nothing."""
        self.fsm.on("nowhere", Mock())
        self.assertEqual(len(self.fsm.handlers), 0)

    def test_not_callable(self):
        """Test that non-callables raise even for unmappable ids."""
        with self.assertRaises(InvalidHandlerError):
            self.fsm.on("enter", None)
        with self.assertRaises(InvalidHandlerError):
            self.fsm.on("nowhere", 42)

    def test_unknown_target_still_registers(self):
        """Test that unknown targets are registered."""
        self.fsm.on("enter:nowhere", Mock())
        self.assertIn(HandlerKey.state("nowhere", "enter"), self.fsm.handlers)

    def test_off(self):
        """Test removing handlers by id."""
        keep, drop = Mock(), Mock()
        self.fsm.on("change", keep).on("change", drop)
        self.fsm.off("change", drop)
        self.fsm.do("next")
        keep.assert_called_once()
        drop.assert_not_called()

        self.fsm.off("system.change")
        self.assertNotIn(HandlerKey.system("change"), self.fsm.handlers)

    def test_add_extends_states(self):
        """Test that add() after construction registers new states."""
        self.fsm.add("help", "intro", "faq")
        self.assertTrue(self.fsm.has("faq"))
        self.assertTrue(self.fsm.go("faq"))


class TestDiagnostics(unittest.TestCase):
    """Test cases for the debug diagnostic channel."""

    logger_name = "flowstate.core.machine.state_machine"

    def test_silent_without_debug(self):
        """Test that nothing is logged when debug is off."""
        fsm = StateMachine({"events": WIZARD})
        with self.assertRaises(AssertionError):
            with self.assertLogs(self.logger_name, level=logging.DEBUG):
                fsm.on("nowhere", Mock())
                fsm.can("unknown")
                fsm.do("finish")

    def test_warnings_with_debug(self):
        """Test warnings for unknown ids and entities in debug mode."""
        fsm = StateMachine({"events": WIZARD, "debug": True})
        with self.assertLogs(self.logger_name, level=logging.WARNING) as logs:
            fsm.on("nowhere", Mock())
            fsm.on("enter:nowhere", Mock())
            fsm.can("unknown")
        output = "\n".join(logs.output)
        self.assertIn("Cannot map event id 'nowhere'", output)
        self.assertIn("no such state 'nowhere'", output)
        self.assertIn("No such action 'unknown'", output)

    def test_rejected_action_logged(self):
        """Test that rejected actions are reported in debug mode."""
        fsm = StateMachine({"events": WIZARD, "debug": True})
        with self.assertLogs(self.logger_name, level=logging.INFO) as logs:
            self.assertFalse(fsm.do("finish"))
        self.assertIn("not available", "\n".join(logs.output))


if __name__ == "__main__":
    unittest.main()
