"""Built-in plugins.

A short plugin name in `distforge.yaml` resolves to a module here
(`Shell` -> `distforge.plugins.shell`). Each plugin exposes
`init(context, config)`, called once per run with the orchestrator and the
plugin's config payload; `init` may register triggers via
`context.add_trigger(name, callback)`.
"""
