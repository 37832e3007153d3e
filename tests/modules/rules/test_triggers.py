"""Tests for SimpleTriggerManager."""

import pytest

from home_reactor.core.items import GenericItem
from home_reactor.modules.rules import (
    ItemChangedTrigger,
    ItemCommandTrigger,
    ItemUpdatedTrigger,
    Rule,
    RuleModel,
    SimpleTriggerManager,
    SystemTrigger,
    TriggerType,
)


def noop(ctx):
    pass


@pytest.fixture
def manager():
    return SimpleTriggerManager()


@pytest.fixture
def door():
    return GenericItem("door1", "CLOSED")


class TestRegistration:
    """Tests for adding and removing rule models."""

    def test_rule_registered_per_trigger_type(self, manager):
        """Test that a rule with two trigger types is found under both."""
        rule = Rule(
            "both",
            (SystemTrigger(TriggerType.STARTUP), ItemCommandTrigger("light1")),
            noop,
        )
        manager.add_rule_model(RuleModel("lights.rules", (rule,)))

        assert manager.get_rules(TriggerType.STARTUP) == [rule]
        assert manager.get_rules(
            TriggerType.COMMAND, GenericItem("light1"), command="ON"
        ) == [rule]
        assert manager.get_rules(TriggerType.SHUTDOWN) == []

    def test_rule_listed_once(self, manager, door):
        """Test that a rule with two matching triggers is returned once."""
        rule = Rule("twice", (ItemUpdatedTrigger("door1"), ItemUpdatedTrigger("door1", "OPEN")), noop)
        manager.add_rule_model(RuleModel("doors.rules", (rule,)))

        assert manager.get_rules(TriggerType.UPDATE, door, new_state="OPEN") == [rule]

    def test_remove_rule_model(self, manager):
        rule = Rule("start", (SystemTrigger(TriggerType.STARTUP),), noop)
        model = RuleModel("a.rules", (rule,))
        manager.add_rule_model(model)

        manager.remove_rule_model(model)

        assert manager.get_rules(TriggerType.STARTUP) == []

    def test_remove_rule_from_one_type(self, manager):
        """Test that remove_rule() leaves other trigger types intact."""
        rule = Rule(
            "start and stop",
            (SystemTrigger(TriggerType.STARTUP), SystemTrigger(TriggerType.SHUTDOWN)),
            noop,
        )
        manager.add_rule_model(RuleModel("a.rules", (rule,)))

        manager.remove_rule(TriggerType.STARTUP, rule)

        assert manager.get_rules(TriggerType.STARTUP) == []
        assert manager.get_rules(TriggerType.SHUTDOWN) == [rule]

    def test_same_name_rules_are_distinct(self, manager):
        """Test that rules compare by identity, not by name."""
        first = Rule("start", (SystemTrigger(TriggerType.STARTUP),), noop)
        second = Rule("start", (SystemTrigger(TriggerType.STARTUP),), noop)
        manager.add_rule_model(RuleModel("a.rules", (first,)))
        manager.add_rule_model(RuleModel("b.rules", (second,)))

        manager.remove_rule(TriggerType.STARTUP, first)

        assert manager.get_rules(TriggerType.STARTUP) == [second]

    def test_clear_all(self, manager, door):
        manager.add_rule_model(
            RuleModel("a.rules", (Rule("r", (ItemChangedTrigger("door1"),), noop),))
        )

        manager.clear_all()

        assert manager.get_rules(TriggerType.CHANGE, door) == []


class TestMatching:
    """Tests for trigger value matching."""

    def test_changed_from_to(self, manager, door):
        rule = Rule("opened", (ItemChangedTrigger("door1", "CLOSED", "OPEN"),), noop)
        manager.add_rule_model(RuleModel("doors.rules", (rule,)))

        assert manager.get_rules(
            TriggerType.CHANGE, door, old_state="CLOSED", new_state="OPEN"
        ) == [rule]
        assert manager.get_rules(
            TriggerType.CHANGE, door, old_state="OPEN", new_state="CLOSED"
        ) == []

    def test_changed_any_value(self, manager, door):
        rule = Rule("any", (ItemChangedTrigger("door1"),), noop)
        manager.add_rule_model(RuleModel("doors.rules", (rule,)))

        assert manager.get_rules(TriggerType.CHANGE, door, old_state=1, new_state=2) == [rule]

    def test_other_item_not_matched(self, manager):
        rule = Rule("any", (ItemChangedTrigger("door1"),), noop)
        manager.add_rule_model(RuleModel("doors.rules", (rule,)))

        assert manager.get_rules(TriggerType.CHANGE, GenericItem("door2")) == []

    def test_command_value(self, manager):
        rule = Rule("on", (ItemCommandTrigger("light1", "ON"),), noop)
        manager.add_rule_model(RuleModel("lights.rules", (rule,)))
        light = GenericItem("light1")

        assert manager.get_rules(TriggerType.COMMAND, light, command="ON") == [rule]
        assert manager.get_rules(TriggerType.COMMAND, light, command="OFF") == []

    def test_value_matched_by_string_form(self, manager):
        """Test that 21 matches a trigger declared with "21"."""
        rule = Rule("temp", (ItemUpdatedTrigger("temp1", "21"),), noop)
        manager.add_rule_model(RuleModel("climate.rules", (rule,)))

        assert manager.get_rules(TriggerType.UPDATE, GenericItem("temp1"), new_state=21) == [rule]

    def test_item_trigger_needs_item(self, manager):
        manager.add_rule_model(
            RuleModel("a.rules", (Rule("r", (ItemUpdatedTrigger("temp1"),), noop),))
        )

        assert manager.get_rules(TriggerType.UPDATE) == []
