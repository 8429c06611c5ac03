"""Software factory pipeline: drive a coding agent through a change workflow.

This package sequences the stages of a software change and delegates the
work of each stage to an external AI coding-agent process:
- Smart branch management (classify the requirement, pick a branch)
- Adaptive step analysis (decide which stages are worth running)
- Implement, simplify, review loop, SOLID check, test, commit, changelog
- Live, deduplicated rendering of the agent's streamed activity
"""

__version__ = "2.1.0"
