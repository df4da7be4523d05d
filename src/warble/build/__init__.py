"""Function builds: compiler contract, env loading, manifest, orchestration.

One-shot (production)::

    orchestrator = BuildOrchestrator(config, state)
    orchestrator.run_once()          # raises CompileError on failure

Continuous (development)::

    session = orchestrator.watch()
    ...
    session.stop()

Import from the submodules directly (``warble.build.orchestrator``,
``warble.build.compiler``); this package keeps its import cheap.
"""
