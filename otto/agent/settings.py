from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AgentSettings(BaseModel):
    """Budgets and timing knobs shared by both control loops."""
    max_attempts_per_goal: int = Field(3, ge=1, description="Attempts a goal may use before the run is aborted.")
    max_total_actions: int = Field(20, ge=1, description="Global cap on executed actions across all goals of a run.")
    max_plan_steps: int = Field(50, ge=1, description="Global cap on executed tools in the plan variant.")
    history_window: int = Field(3, ge=0, description="Recent action results surfaced to the decision prompt.")
    tool_history_window: int = Field(5, ge=0, description="Recent tool results surfaced to the next-tool prompt.")
    settle_delay_seconds: float = Field(0.1, ge=0.0, description="Pause after a non-achieved verification before re-observing.")
    verify_settle_seconds: float = Field(0.3, ge=0.0, description="Pause before capturing the 'after' screen for verification.")
    tool_settle_seconds: float = Field(0.1, ge=0.0, description="Pause between sequential tools of a plan-step batch.")
    open_app_wait_ms: int = Field(500, ge=0, description="Wait appended after a pattern-resolved open_app tool.")

    model_config = ConfigDict(validate_assignment=True)
