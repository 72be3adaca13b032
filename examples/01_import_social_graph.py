#!/usr/bin/env python3
"""
csv2gremlin - Social Graph Import Example

This example loads people.csv as vertices and knows.csv as edges into a
running Gremlin Server. It showcases:

1. Loading the connection descriptor from gremlin.yaml
2. Reading CSV rows into vertex and edge records
3. Importing vertices, then edges resolved by the "name" property
4. Inspecting the per-row report (knows.csv references a missing "Dave")

Requirements:
- A Gremlin Server on localhost:8182, for example ArcadeDB started with
  -Darcadedb.server.plugins=GremlinServer:com.arcadedb.server.gremlin.GremlinServerPlugin

Usage:
- Run this example from the examples/ directory:
  cd examples && python 01_import_social_graph.py
"""

import logging
import os
import sys

import csv2gremlin
from csv2gremlin import EndpointResolution, ImportOrchestrator, ImportSettings

HERE = os.path.dirname(os.path.abspath(__file__))


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    descriptor = csv2gremlin.load_descriptor(os.path.join(HERE, "gremlin.yaml"))
    print(f"🔌 Target: {', '.join(descriptor.endpoints())}")

    people = csv2gremlin.read_vertices(os.path.join(HERE, "people.csv"))
    knows = csv2gremlin.read_edges(os.path.join(HERE, "knows.csv"))
    print(f"📄 Read {len(people)} vertex row(s) and {len(knows)} edge row(s)")

    vertices = ImportOrchestrator(descriptor, ImportSettings(concurrency=4)).import_vertices(
        people
    )
    print(vertices.render())
    if vertices.aborted is not None:
        return vertices.exit_code

    # Edge rows name people, so look endpoints up by their "name" property
    settings = ImportSettings(
        concurrency=4,
        resolution=EndpointResolution.parse("property:name", label="person"),
        cache_lookups=True,
    )
    edges = ImportOrchestrator(descriptor, settings).import_edges(knows)
    print(edges.render())

    for failure in edges.failures:
        print(f"❌ knows.csv data row {failure.index + 1}: {failure.message}")

    return max(vertices.exit_code, edges.exit_code)


if __name__ == "__main__":
    sys.exit(main())
