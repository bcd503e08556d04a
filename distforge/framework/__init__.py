"""Project-specific framework utilities.

Everything the orchestrator coordinates lives here: configuration parsing,
the dependency spec, plugin resolution, staging directories, dependency
verification and artifact generation. None of it changes the process-wide
working directory except `workdir.ScopedWorkDir`.

For the reusable, project-agnostic step engine and event bus, use `pipelinekit`.
"""
