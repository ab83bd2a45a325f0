"""
Kubarango Modules - Black Box Architecture

Dependencies point one way:

    api, config, events, features
      <- storage <- k8s <- arangod, rotation, pod
      <- plan <- reconcile
      <- scaling
      <- deployment

Each package exposes its interface through __init__ and __all__.
"""
