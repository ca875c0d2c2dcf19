"""Plinth plugin composition framework.

Plinth assembles an application from plugins: declarative bundles of bean
definitions, extension points, contributions and bean redefinitions. Plugins are
validated against their declared dependencies, combined into a single set of
definitions and realised once into an immutable container. A lifecycle manager
rebuilds the container whenever plugins are registered, enabled or disabled.

Key Features:
    - Plugins as plain data, authored in code, with decorators or in YAML
    - Dependency validation naming the plugin to add to ``deps``
    - Extension points with collect-all, collect-last and collect-data policies
    - Bean redefinition that wraps the original definition instead of losing it
    - Static resolution with cycle detection and no runtime proxies
    - Cascading disablement of plugins that depend on a disabled plugin

Basic Usage:
    >>> from plinth.builders import make_container
    >>> from plinth.domain import call, literal, ref
    >>> from plinth.plugin import make_plugin
    >>>
    >>> a = make_plugin(id="A", beans={"x": literal(1)})
    >>> b = make_plugin(id="B", deps=[a], beans={"y": call(lambda x: x + 1, ref("A/x"))})
    >>> container = make_container([a, b])
    >>> container["B/y"]
    2

The framework consists of several core modules:
    - plugin: The canonical plugin record and its normaliser
    - authoring: Decorator-based plugin authoring
    - loader: Plugin descriptors from mappings and YAML files
    - validator: Dependency validation between plugins
    - extensions: Aggregation of contributions into extension points
    - redefinitions: Wrap-and-preserve rewriting of redefined beans
    - builders: High-level container construction functions
    - container: The immutable container and its builder
    - lifecycle: System state, reloads and the control API
    - config: Lifecycle configuration
    - domain: Core domain models (Key, bean definitions, MaterialisedBean)
    - errors: Framework-specific exceptions
"""
