"""Stage agents: prompts, model selection, hooks and tool contracts.

Import agent construction from ``intakeflow.agents.agent_factory``; this
package init stays light so the tool catalogue can be imported without
pulling in the model stack.
"""
