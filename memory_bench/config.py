"""Configuration for benchmark runs: run parameters, strategies and scenarios."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from config import get_settings
from core.exceptions import ConfigurationError
from .context.strategies import (
    StrategyFactory,
    FullContextStrategy,
    SlidingWindowStrategy,
    SummarizationStrategy,
    DelegationStrategy,
    PersistentDelegationStrategy,
)


@dataclass
class BenchmarkConfig:
    """Configuration for one job-set run. Validated on construction."""

    # Output settings
    output_path: Optional[str] = None

    # Scheduling
    concurrency: int = 8
    sequential: bool = False
    resume: bool = False

    # Job selection
    strategy_filter: Optional[str] = None
    scenario_filter: Optional[str] = None
    quick: bool = False
    sample: Optional[int] = None
    seed: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be a positive integer, got {self.concurrency!r}")
        if self.sample is not None and (
            isinstance(self.sample, bool) or not isinstance(self.sample, int) or self.sample < 1
        ):
            raise ConfigurationError(f"sample must be a positive integer, got {self.sample!r}")
        if self.output_path is None:
            timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            self.output_path = get_settings().get_results_path(f"benchmark-{timestamp}.json")

    def filters(self) -> Dict[str, Any]:
        """Selection parameters as recorded in the run manifest."""
        return {
            "strategy": self.strategy_filter,
            "scenario": self.scenario_filter,
            "quick": self.quick,
            "sample": self.sample,
            "seed": self.seed,
            "resume": self.resume,
            "sequential": self.sequential,
            "concurrency": self.concurrency
        }


def build_strategy_factories(
    compress_every: Optional[int] = None,
    recent_window: Optional[int] = None
) -> List[StrategyFactory]:
    """All registered strategies, with delegation cadence from settings by default."""
    settings = get_settings()
    every = compress_every or settings.compress_every
    window = recent_window or settings.recent_window

    return [
        StrategyFactory("Full Context", lambda client: FullContextStrategy()),
        StrategyFactory("Window(10)", lambda client: SlidingWindowStrategy(window_size=10)),
        StrategyFactory("Window(6)", lambda client: SlidingWindowStrategy(window_size=6)),
        StrategyFactory(
            f"Summarize({every})",
            lambda client: SummarizationStrategy(client=client, summarize_every=every, recent_window=6)
        ),
        StrategyFactory(
            f"RLM({every})",
            lambda client: DelegationStrategy(client=client, delegate_every=every, recent_window=window)
        ),
        StrategyFactory(
            "PersistentRLM",
            lambda client: PersistentDelegationStrategy(
                client=client, compress_every=every, recent_window=window
            )
        ),
    ]


@dataclass(frozen=True)
class Scenario:
    """A scripted conversation followed by a question that tests retention."""
    name: str
    description: str
    system_prompt: str
    steps: List[str]
    final_question: str
    check_answer: Callable[[str], bool] = field(compare=False)


def _contains_all(*needles: str) -> Callable[[str], bool]:
    def check(answer: str) -> bool:
        lower = answer.lower()
        return all(needle.lower() in lower for needle in needles)
    return check


def _check_inventory(answer: str) -> bool:
    # Widget-A 370, Widget-B 1005, Gadget-X 200, Gizmo-Z 0, MegaPart-Q 400
    lower = answer.lower()
    has_gizmo_zero = "gizmo" in lower and (
        " 0" in answer or ": 0" in answer or "zero" in lower or "none" in lower
    )
    return (
        "370" in answer
        and ("1005" in answer or "1,005" in answer)
        and "200" in answer
        and "400" in answer
        and has_gizmo_zero
    )


SCENARIOS: List[Scenario] = [
    Scenario(
        name="Early Fact Recall",
        description="Can the agent remember specific facts stated at the beginning after 20+ exchanges?",
        system_prompt=(
            "You are a helpful assistant managing a project. Answer questions based on what "
            "you've been told in this conversation. If you don't know something, say so."
        ),
        steps=[
            "Our project is called Mercury. The budget is exactly $347,250. The deadline is March 15, 2027. The project lead is Dr. Sarah Chen.",
            "We need to hire 3 backend engineers and 2 frontend engineers. The backend engineers will work on the API layer using Rust.",
            "The first milestone is the database schema design, due January 10, 2027. Use PostgreSQL with TimescaleDB extension.",
            "Actually, I need to update something. The frontend team will use Svelte, not React. Everything else stays the same.",
            "We had a meeting today. The stakeholders want weekly progress reports sent every Friday at 3pm EST.",
            "The QA team lead is Marcus Williams. He wants integration tests to cover at least 85% of API endpoints.",
            "We got approval to use AWS us-east-1 region for production. The staging environment will be in us-west-2.",
            "The design team finished the mockups. There are 47 screens total. The login flow has 5 screens.",
            "Legal reviewed the contracts. The data retention policy requires 7 years of audit logs.",
            "We need to integrate with three external APIs: Stripe for payments, SendGrid for email, and Twilio for SMS.",
            "The security audit is scheduled for February 28, 2027. We need SOC 2 Type II compliance.",
            "HR confirmed the salary ranges. Backend engineers: $145k-$175k. Frontend engineers: $130k-$160k.",
            "The mobile app is a phase 2 deliverable. Phase 1 is web only. Mobile should start after the March deadline.",
            "Infrastructure costs are estimated at $12,400 per month for production. Staging is roughly $3,100 per month.",
            "The project sponsor is VP of Engineering, James Rodriguez. He reports to the CTO, Lisa Park.",
            "We decided on two-week sprints. Sprint 1 starts January 6, 2027. Sprint reviews are on Fridays.",
        ],
        final_question=(
            "I need a summary for the board. What is the exact project budget, who is the project "
            "lead, what is the deadline, and what frontend framework are we using?"
        ),
        check_answer=_contains_all("347,250", "sarah chen", "march 15", "2027", "svelte"),
    ),
    Scenario(
        name="State Change Tracking",
        description="Can the agent track updates and corrections across a long conversation?",
        system_prompt=(
            "You are tracking inventory for a warehouse. Keep track of all items and their "
            "quantities. When asked, report the CURRENT state based on all updates."
        ),
        steps=[
            "We just received a shipment. Add to inventory: 500 units of Widget-A, 300 units of Widget-B, 200 units of Gadget-X.",
            "A customer ordered 50 units of Widget-A. Remove them from inventory.",
            "Quality control found 15 defective units of Widget-B. Remove them from inventory.",
            "New shipment arrived: 100 more units of Widget-A and 75 units of a new item called Gizmo-Z.",
            "Customer returned 10 units of Widget-A (from the earlier order). Add them back.",
            "We're discontinuing Gadget-X. Move all remaining units to the clearance section. The count stays the same but mark it as clearance.",
            "Warehouse fire damaged 30 units of Widget-B. Remove them from inventory.",
            "Emergency order: customer needs 200 units of Widget-A shipped today. Remove from inventory.",
            "Received a bulk shipment: 1000 units of Widget-B to replace damaged and sold stock.",
            "Internal transfer: send 50 units of Gizmo-Z to the downtown location. Remove from our inventory.",
            "Year-end audit correction: we actually had 10 more Widget-A than we thought. Add 10 to inventory.",
            "Customer ordered 100 units of Widget-B and 25 units of Gizmo-Z.",
            "New product launch: add 400 units of MegaPart-Q to inventory.",
            "Widget-A price change to $24.99 per unit (was $19.99). Quantities unchanged.",
            "Transfer 150 units of Widget-B to the east warehouse.",
        ],
        final_question=(
            "What is the current inventory count for each item at our location? "
            "List every item with its exact quantity."
        ),
        check_answer=_check_inventory,
    ),
    Scenario(
        name="Contradiction Resolution",
        description="Can the agent handle conflicting information and use the most recent version?",
        system_prompt=(
            "You are a travel assistant planning a trip. Remember all details and always use "
            "the most recent information when details change."
        ),
        steps=[
            "I'm planning a trip to Tokyo. I want to go from June 1 to June 14. My budget is $5,000.",
            "I found a flight on ANA airlines for $1,200 round trip. Let's book that.",
            "For the hotel, I want to stay at the Park Hyatt Tokyo. It's $450 per night.",
            "Actually, I just checked and the Park Hyatt is fully booked. Let's switch to the Aman Tokyo at $800 per night.",
            "My friend Kenji lives in Shibuya. His phone number is 090-1234-5678. Let's plan dinner with him on June 5.",
            "Budget update: my boss approved a travel bonus. New budget is $8,500 instead of $5,000.",
            "Wait, I made an error. The Aman Tokyo is actually $600 per night, not $800. I was looking at the wrong room type.",
            "Change of plans: Kenji moved to Shinjuku last month. And his new number is 090-8765-4321.",
            "Actually, let's extend the trip. New dates: June 1 to June 18. Same flights, just changing the return date.",
            "The ANA flight change fee is $150, so the total flight cost is now $1,350.",
            "Kenji actually wants to meet on June 10 instead of June 5. He's busy that first week.",
            "One more thing: I found the Aman has a deal: $500 per night if I book for 10+ nights. Since I'm staying 17 nights, that applies.",
        ],
        final_question=(
            "Give me a complete trip summary: dates, total budget, flight cost, hotel name and nightly "
            "rate, Kenji's neighborhood and phone number, and when I'm meeting Kenji."
        ),
        check_answer=_contains_all(
            "june 1", "june 18", "8,500", "1,350", "aman", "500", "shinjuku", "090-8765-4321", "june 10"
        ),
    ),
]


def get_scenario(name: str) -> Scenario:
    """Find a scenario by exact name."""
    for scenario in SCENARIOS:
        if scenario.name == name:
            return scenario
    raise ValueError(f"Unknown scenario: {name}")

