"""
WebStudio AI generation agents.

Every pipeline step (architecture, content, layout, export, deployment) is a
StepDefinition in agents.steps and runs through the shared StepExecutor in
agents.executor.
"""
