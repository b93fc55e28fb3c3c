"""siteflow static site build pipeline.

This package compiles templates, stylesheets and scripts, optimizes images,
packages a release directory and serves a local preview with live reload.
Every transformation is delegated to an existing library or tool; the
package itself provides the orchestration around them.

Named tasks are kept in a registry and composed with sequence/concurrent.
The orchestrator exposes the one-shot build pipeline and the long-running
develop pipeline, which runs once and then keeps watching the sources.

The main entry point is the CLI module, which runs pipelines or individual
tasks by name.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
