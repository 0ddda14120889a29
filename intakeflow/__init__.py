"""intakeflow: feature-request intake, assessment and backlog generation.

A request moves through a role-gated status graph. Three agent stages work
on it through stage-scoped tools: intake gathers the details, assessment
scores it, output writes the epic and user stories. Reviewers record
decisions and, later, how those decisions turned out.
"""

__version__ = "0.1.0"
