"""Read-only game-state tools exposed to Claude.

Each tool pairs a Lua builder from `lua` with a typed result: call() fills in
parameter defaults, runs the snippet through the shared RCON session, lets
the transport raise any embedded Lua error, and decodes the rest.

Tools never catch SenseiError; the agent decides what to tell the player.
"""

import json
import math
from dataclasses import asdict, dataclass

from factorio_sensei import lua
from factorio_sensei.errors import DecodeError
from factorio_sensei.lua import QueryKind
from factorio_sensei.transport import execute_lua_json


# ── Decoding helpers ─────────────────────────────────────────

def _load_object(text: str) -> dict:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise DecodeError(f"response is not JSON: {str(text)[:200]!r}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _str(data: dict, key: str, optional: bool = False) -> str | None:
    value = data.get(key)
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"field {key!r} should be a string, got {value!r}")
    return value


def _float(data: dict, key: str, optional: bool = False) -> float | None:
    value = data.get(key)
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"field {key!r} should be a number, got {value!r}")
    return float(value)


def _int(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"field {key!r} should be an integer, got {value!r}")
    return value


def _list(data: dict, key: str) -> list:
    value = data.get(key)
    # table_to_json renders an empty Lua table as an object
    if value == {}:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"field {key!r} should be a list, got {value!r}")
    for entry in value:
        if not isinstance(entry, dict) and not isinstance(entry, str):
            raise DecodeError(f"unexpected entry in {key!r}: {entry!r}")
    return value


def _objects(data: dict, key: str) -> list[dict]:
    entries = _list(data, key)
    for entry in entries:
        if not isinstance(entry, dict):
            raise DecodeError(f"entries of {key!r} should be objects, got {entry!r}")
    return entries


class _Result:
    """Shared JSON plumbing for typed results."""

    @classmethod
    def from_dict(cls, data: dict):
        raise NotImplementedError

    @classmethod
    def from_json(cls, text: str):
        return cls.from_dict(_load_object(text))

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


# ── Typed results ────────────────────────────────────────────

@dataclass(frozen=True)
class PlayerPosition(_Result):
    x: float
    y: float
    surface: str

    @classmethod
    def from_dict(cls, data: dict):
        return cls(x=_float(data, "x"), y=_float(data, "y"), surface=_str(data, "surface"))


@dataclass(frozen=True)
class InventoryItem(_Result):
    name: str
    count: int

    @classmethod
    def from_dict(cls, data: dict):
        return cls(name=_str(data, "name"), count=_int(data, "count"))


@dataclass(frozen=True)
class PlayerInventory(_Result):
    """Main inventory contents, one entry per item name."""

    items: tuple[InventoryItem, ...]

    @classmethod
    def from_dict(cls, data: dict):
        return cls(items=tuple(InventoryItem.from_dict(i) for i in _objects(data, "items")))


@dataclass(frozen=True)
class ProductionStats(_Result):
    """All-time totals: produced is the input side of the statistics, consumed the output side."""

    item: str
    produced: int
    consumed: int

    @classmethod
    def from_dict(cls, data: dict):
        return cls(item=_str(data, "item"), produced=_int(data, "produced"),
                   consumed=_int(data, "consumed"))


@dataclass(frozen=True)
class PowerStats(_Result):
    """Electric network summary; satisfaction below 1.0 means a brownout."""

    production_watts: float
    consumption_watts: float
    satisfaction: float

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            production_watts=_float(data, "production_watts"),
            consumption_watts=_float(data, "consumption_watts"),
            satisfaction=_float(data, "satisfaction"),
        )


@dataclass(frozen=True)
class ResearchStatus(_Result):
    current: str | None
    progress: float | None
    queue: tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict):
        queue = _list(data, "queue")
        if not all(isinstance(name, str) for name in queue):
            raise DecodeError(f"research queue should hold names, got {queue!r}")
        return cls(
            current=_str(data, "current", optional=True),
            progress=_float(data, "progress", optional=True),
            queue=tuple(queue),
        )


@dataclass(frozen=True)
class RecipeItem(_Result):
    """One ingredient or product; kind is "item" or "fluid"."""

    name: str
    kind: str
    amount: float

    @classmethod
    def from_dict(cls, data: dict):
        return cls(name=_str(data, "name"), kind=_str(data, "type"), amount=_float(data, "amount"))

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.kind, "amount": self.amount}


@dataclass(frozen=True)
class RecipeInfo(_Result):
    name: str
    energy: float
    ingredients: tuple[RecipeItem, ...]
    products: tuple[RecipeItem, ...]

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            name=_str(data, "name"),
            energy=_float(data, "energy"),
            ingredients=tuple(RecipeItem.from_dict(i) for i in _objects(data, "ingredients")),
            products=tuple(RecipeItem.from_dict(i) for i in _objects(data, "products")),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "energy": self.energy,
            "ingredients": [i.to_dict() for i in self.ingredients],
            "products": [p.to_dict() for p in self.products],
        }


@dataclass(frozen=True)
class NearbyEntity(_Result):
    name: str
    kind: str
    x: float
    y: float

    @classmethod
    def from_dict(cls, data: dict):
        return cls(name=_str(data, "name"), kind=_str(data, "type"),
                   x=_float(data, "x"), y=_float(data, "y"))

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.kind, "x": self.x, "y": self.y}


@dataclass(frozen=True)
class NearbyEntities(_Result):
    entities: tuple[NearbyEntity, ...]

    @classmethod
    def from_dict(cls, data: dict):
        return cls(entities=tuple(NearbyEntity.from_dict(e) for e in _objects(data, "entities")))

    def to_dict(self) -> dict:
        return {"entities": [e.to_dict() for e in self.entities]}


@dataclass(frozen=True)
class ResourcePatch(_Result):
    """All tiles of one resource within the radius: summed amount, averaged position."""

    name: str
    total_amount: int
    center_x: float
    center_y: float

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            name=_str(data, "name"),
            total_amount=_int(data, "total_amount"),
            center_x=_float(data, "center_x"),
            center_y=_float(data, "center_y"),
        )


@dataclass(frozen=True)
class NearbyResources(_Result):
    resources: tuple[ResourcePatch, ...]

    @classmethod
    def from_dict(cls, data: dict):
        return cls(resources=tuple(ResourcePatch.from_dict(r) for r in _objects(data, "resources")))


@dataclass(frozen=True)
class AssemblerInfo(_Result):
    name: str
    x: float
    y: float
    recipe: str | None
    crafting_speed: float

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            name=_str(data, "name"),
            x=_float(data, "x"),
            y=_float(data, "y"),
            recipe=_str(data, "recipe", optional=True),
            crafting_speed=_float(data, "crafting_speed"),
        )


@dataclass(frozen=True)
class Assemblers(_Result):
    assemblers: tuple[AssemblerInfo, ...]

    @classmethod
    def from_dict(cls, data: dict):
        return cls(assemblers=tuple(AssemblerInfo.from_dict(a) for a in _objects(data, "assemblers")))


@dataclass(frozen=True)
class FurnaceInfo(_Result):
    name: str
    x: float
    y: float
    recipe: str | None
    fuel_type: str | None
    output_item: str | None

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            name=_str(data, "name"),
            x=_float(data, "x"),
            y=_float(data, "y"),
            recipe=_str(data, "recipe", optional=True),
            fuel_type=_str(data, "fuel_type", optional=True),
            output_item=_str(data, "output_item", optional=True),
        )


@dataclass(frozen=True)
class Furnaces(_Result):
    furnaces: tuple[FurnaceInfo, ...]

    @classmethod
    def from_dict(cls, data: dict):
        return cls(furnaces=tuple(FurnaceInfo.from_dict(f) for f in _objects(data, "furnaces")))


# ── Tools ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Param:
    """One tool argument. A param without a default is required."""

    name: str
    type: str  # JSON schema type: "string", "number" or "integer"
    description: str
    default: object = None

    @property
    def required(self) -> bool:
        return self.default is None

    def coerce(self, value):
        if self.type == "string":
            if not isinstance(value, str) or not value:
                raise ValueError(f"{self.name} must be a non-empty string, got {value!r}")
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{self.name} must be a {self.type}, got {value!r}")
        if self.type == "integer":
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{self.name} must be an integer, got {value!r}")
            return int(value)
        if not math.isfinite(value):
            raise ValueError(f"{self.name} must be finite, got {value!r}")
        return float(value)


class QueryTool:
    """Base for all tools. Subclasses set the definition attributes and build()."""

    name: str = ""
    description: str = ""
    kind: QueryKind
    params: tuple[Param, ...] = ()
    result_type: type = _Result

    def __init__(self, rcon):
        self.rcon = rcon

    def definition(self) -> dict:
        properties = {}
        for param in self.params:
            description = param.description
            if not param.required:
                description = f"{description} (default: {param.default})"
            properties[param.name] = {"type": param.type, "description": description}
        schema = {"type": "object", "properties": properties}
        required = [p.name for p in self.params if p.required]
        if required:
            schema["required"] = required
        return {"name": self.name, "description": self.description, "input_schema": schema}

    def resolve_args(self, args: dict | None) -> dict:
        args = args or {}
        resolved = {}
        for param in self.params:
            value = args.get(param.name)
            if value is None:
                if param.required:
                    raise ValueError(f"{self.name}: missing required argument {param.name!r}")
                value = param.default
            resolved[param.name] = param.coerce(value)
        return resolved

    def build(self, **kwargs) -> str:
        raise NotImplementedError

    def call(self, args: dict | None = None):
        snippet = self.build(**self.resolve_args(args))
        return self.result_type.from_json(execute_lua_json(self.rcon, snippet))


class GetPlayerPosition(QueryTool):
    name = "get_player_position"
    description = "Get the current player's position and surface name"
    kind = QueryKind.PLAYER_POSITION
    result_type = PlayerPosition

    def build(self):
        return lua.player_position()


class GetPlayerInventory(QueryTool):
    name = "get_player_inventory"
    description = "Get all items in the player's main inventory"
    kind = QueryKind.PLAYER_INVENTORY
    result_type = PlayerInventory

    def build(self):
        return lua.player_inventory()


class GetProductionStats(QueryTool):
    name = "get_production_stats"
    description = "Get total production and consumption statistics for a specific item"
    kind = QueryKind.PRODUCTION_STATS
    params = (
        Param("item", "string",
              "The item prototype name (e.g. 'iron-plate', 'electronic-circuit')"),
    )
    result_type = ProductionStats

    def build(self, item):
        return lua.production_stats(item)


class GetPowerStats(QueryTool):
    name = "get_power_stats"
    description = ("Get the power grid statistics: total production, consumption, "
                   "and satisfaction ratio")
    kind = QueryKind.POWER_STATS
    result_type = PowerStats

    def build(self):
        return lua.power_stats()


class GetResearchStatus(QueryTool):
    name = "get_research_status"
    description = "Get current research technology, progress percentage, and research queue"
    kind = QueryKind.RESEARCH_STATUS
    result_type = ResearchStatus

    def build(self):
        return lua.research_status()


class GetRecipe(QueryTool):
    name = "get_recipe"
    description = "Look up a recipe's ingredients, products, and crafting time by prototype name"
    kind = QueryKind.RECIPE
    params = (
        Param("recipe_name", "string",
              "The recipe prototype name (e.g. 'iron-gear-wheel', 'electronic-circuit')"),
    )
    result_type = RecipeInfo

    def build(self, recipe_name):
        return lua.recipe(recipe_name)


class GetNearbyEntities(QueryTool):
    name = "get_nearby_entities"
    description = (f"Get buildings and structures near the player (excludes resources, trees, "
                   f"and decoratives). Returns up to {lua.MAX_ENTITIES} entities.")
    kind = QueryKind.NEARBY_ENTITIES
    params = (Param("radius", "number", "Search radius in tiles", 20),)
    result_type = NearbyEntities

    def build(self, radius):
        return lua.nearby_entities(radius)


class GetNearbyResources(QueryTool):
    name = "get_nearby_resources"
    description = ("Get resource patches near the player, aggregated by type with total "
                   "amounts and center positions")
    kind = QueryKind.NEARBY_RESOURCES
    params = (Param("radius", "number", "Search radius in tiles", 50),)
    result_type = NearbyResources

    def build(self, radius):
        return lua.nearby_resources(radius)


class GetAssemblers(QueryTool):
    name = "get_assemblers"
    description = "Get assembling machines on the map with their recipes and crafting speeds"
    kind = QueryKind.ASSEMBLERS
    params = (Param("limit", "integer", "Maximum number of assemblers to return", 30),)
    result_type = Assemblers

    def build(self, limit):
        return lua.assemblers(limit)


class GetFurnaces(QueryTool):
    name = "get_furnaces"
    description = "Get furnaces on the map with their recipes, fuel types, and output items"
    kind = QueryKind.FURNACES
    params = (Param("limit", "integer", "Maximum number of furnaces to return", 30),)
    result_type = Furnaces

    def build(self, limit):
        return lua.furnaces(limit)


TOOL_CLASSES = (
    GetPlayerPosition,
    GetPlayerInventory,
    GetProductionStats,
    GetPowerStats,
    GetResearchStatus,
    GetNearbyEntities,
    GetNearbyResources,
    GetAssemblers,
    GetFurnaces,
    GetRecipe,
)


def build_tools(rcon) -> list[QueryTool]:
    return [cls(rcon) for cls in TOOL_CLASSES]
