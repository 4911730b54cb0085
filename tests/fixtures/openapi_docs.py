"""
Canonical OpenAPI documents for engine tests.

`pets_doc()` returns a fresh copy every call so tests can mutate freely.
"""

from __future__ import annotations

import copy
from typing import Any, Dict

_PETS: Dict[str, Any] = {
    "openapi": "3.0.1",
    "info": {"title": "Pets", "version": "1.0.0"},
    "paths": {
        "/pets": {
            "parameters": [
                {"name": "trace", "in": "header", "schema": {"type": "string"}},
            ],
            "get": {
                "operationId": "listPets",
                "parameters": [
                    {"name": "limit", "in": "query", "required": False, "schema": {"type": "integer"}},
                ],
                "responses": {
                    "default": {"description": "error"},
                    "200": {
                        "description": "ok",
                        "headers": {"x-rate-limit": {"schema": {"type": "integer"}}},
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "required": ["id"],
                                        "properties": {
                                            "id": {"type": "string"},
                                            "name": {"type": "string"},
                                        },
                                    },
                                },
                            },
                        },
                    },
                },
            },
            "post": {
                "operationId": "createPet",
                "requestBody": {
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "properties": {"name": {"type": "string"}},
                            },
                        },
                    },
                },
                "responses": {"201": {"description": "created"}},
            },
        },
    },
}


def pets_doc() -> Dict[str, Any]:
    return copy.deepcopy(_PETS)


def pets_doc_without_post() -> Dict[str, Any]:
    doc = pets_doc()
    del doc["paths"]["/pets"]["post"]
    return doc


def minimal_doc(paths: Dict[str, Any] | None = None) -> Dict[str, Any]:
    return {
        "openapi": "3.0.1",
        "info": {"title": "Minimal", "version": "1.0.0"},
        "paths": paths or {},
    }


PETS_YAML = """\
openapi: 3.0.1
info:
  title: Pets
  version: 1.0.0
paths:
  /pets:
    get:
      operationId: listPets
      responses:
        200:
          description: ok
          content:
            application/json:
              schema:
                $ref: './schemas.yaml#/Pet'
components:
  schemas:
    Node:
      type: object
      properties:
        child:
          $ref: '#/components/schemas/Node'
"""

SCHEMAS_YAML = """\
Pet:
  type: object
  properties:
    id:
      type: string
    born:
      type: string
      example: 2020-01-01
"""
