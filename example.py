#!/usr/bin/env python3
"""
Quick example demonstrating home-reactor basic usage.

Run with: PYTHONPATH=src python3 example.py
"""

import logging
import time

from home_reactor.core import (
    EventBus,
    GenericItem,
    InMemoryItemRegistry,
    ItemStateUpdater,
    JobScheduler,
    RuntimeConfig,
)
from home_reactor.modules.monitor import EventLogger
from home_reactor.modules.rules import (
    VAR_PREVIOUS_STATE,
    CallableScriptEngine,
    InMemoryModelRepository,
    ItemChangedTrigger,
    Rule,
    RuleModel,
    RulesModule,
    SystemTrigger,
    TriggerType,
)

logging.basicConfig(level=logging.INFO, format="   %(name)s: %(message)s")

print("=" * 60)
print("home-reactor Example")
print("=" * 60)

# 1. Kernel services
print("\n1. Starting kernel services...")
config = RuntimeConfig.from_env()
scheduler = JobScheduler()
scheduler.activate(config)
bus = EventBus(scheduler)
print(f"   ✓ JobScheduler active ({config.pool_min_size}-{config.pool_max_size} workers)")

# 2. Items
print("\n2. Registering items...")
registry = InMemoryItemRegistry(
    [
        GenericItem("FrontDoor", "CLOSED"),
        GenericItem("HallLight", "OFF"),
    ]
)
bus.subscribe_state(ItemStateUpdater(registry))
for item in registry.get_items():
    print(f"   ✓ {item.name} = {item.state}")

# 3. Rules
print("\n3. Loading rules...")


def welcome(ctx):
    print(f"   → FrontDoor opened (was {ctx[VAR_PREVIOUS_STATE]}), switching HallLight on")
    bus.post_update("HallLight", "ON")


repository = InMemoryModelRepository()
repository.add_model(
    RuleModel(
        "hall.rules",
        (
            Rule("system started", (SystemTrigger(TriggerType.STARTUP),), lambda ctx: print("   → Rules loaded")),
            Rule("welcome", (ItemChangedTrigger("FrontDoor", "CLOSED", "OPEN"),), welcome),
        ),
    )
)

# 4. Modules
print("\n4. Attaching modules...")
modules = [EventLogger(), RulesModule(CallableScriptEngine(), registry, repository, config=config)]
for module in modules:
    module.attach(bus, scheduler)
    print(f"   ✓ Module '{module.id}' attached")

# 5. Events
print("\n5. Opening the front door...")
bus.post_update("FrontDoor", "OPEN")
time.sleep(0.5)
print(f"   ✓ HallLight is now {registry.get_item('HallLight').state}")

# 6. Shutdown
print("\n6. Shutting down...")
for module in reversed(modules):
    module.detach()
scheduler.deactivate()
print("   ✓ Done")
