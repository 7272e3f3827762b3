"""Lua IIFE builders for read-only Factorio 2.x state queries.

Each builder returns a bare IIFE string, without the `/c` prefix or the
`rcon.print(helpers.table_to_json(...))` envelope (see transport.wrap_json).

Every snippet:
  1. is wrapped in `(function() ... end)()`
  2. checks `game.connected_players[1]` and returns `{error="no_player"}`
     when nobody is connected (recipe lookup is the exception: it only
     reads prototypes)
  3. builds plain Lua tables, no userdata, so table_to_json can serialize them
  4. uses dot syntax for the Factorio 2.x API
  5. caps unbounded result sets
"""

import math
from enum import Enum


class QueryKind(Enum):
    PLAYER_POSITION = "player_position"
    PLAYER_INVENTORY = "player_inventory"
    PRODUCTION_STATS = "production_stats"
    POWER_STATS = "power_stats"
    RESEARCH_STATUS = "research_status"
    RECIPE = "recipe"
    NEARBY_ENTITIES = "nearby_entities"
    NEARBY_RESOURCES = "nearby_resources"
    ASSEMBLERS = "assemblers"
    FURNACES = "furnaces"


NO_PLAYER = "no_player"
RECIPE_NOT_FOUND = "recipe_not_found"

MAX_ENTITIES = 50
MAX_RESEARCH_QUEUE = 10

# Entity types that are map noise rather than player-built structures
NOISE_ENTITY_TYPES = ("resource", "tree", "simple-entity")

PLAYER_CHECK = (
    'local p = game.connected_players[1] '
    f'if not p then return {{error="{NO_PLAYER}"}} end'
)


def sanitize_lua_string(text: str) -> str:
    """Escape text for interpolation inside a double-quoted Lua string literal.

    Order matters: backslashes first, so the escapes added for quotes and
    brackets are not themselves doubled.
    """
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("[", "\\[")
        .replace("]", "\\]")
    )


def _lua_number(value, name: str) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive finite number, got {value!r}")
    return repr(float(value)) if isinstance(value, float) else str(value)


def _lua_limit(value) -> str:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"limit must be a positive integer, got {value!r}")
    return str(value)


def _iife(body: str, player_check: bool = True) -> str:
    check = f"{PLAYER_CHECK} " if player_check else ""
    return f"(function() {check}{body} end)()"


def player_position() -> str:
    return _iife('return {x=p.position.x, y=p.position.y, surface=p.surface.name}')


def player_inventory() -> str:
    return _iife(
        'local inv = p.get_main_inventory() '
        'local items = {} '
        'if inv then '
        '  for i = 1, #inv do '
        '    local stack = inv[i] '
        '    if stack.valid_for_read then '
        '      local found = false '
        '      for _, item in ipairs(items) do '
        '        if item.name == stack.name then '
        '          item.count = item.count + stack.count '
        '          found = true '
        '          break '
        '        end '
        '      end '
        '      if not found then '
        '        items[#items+1] = {name=stack.name, count=stack.count} '
        '      end '
        '    end '
        '  end '
        'end '
        'return {items=items}'
    )


def production_stats(item: str) -> str:
    safe_item = sanitize_lua_string(item)
    return _iife(
        'local stats = p.force.get_item_production_statistics("nauvis") '
        f'local produced = stats.get_input_count("{safe_item}") '
        f'local consumed = stats.get_output_count("{safe_item}") '
        f'return {{item="{safe_item}", produced=produced, consumed=consumed}}'
    )


def power_stats() -> str:
    idle = 'return {production_watts=0, consumption_watts=0, satisfaction=1.0}'
    return _iife(
        'local poles = p.surface.find_entities_filtered{type="electric-pole", limit=1} '
        f'if #poles == 0 then {idle} end '
        'local network = poles[1].electric_network_statistics '
        f'if not network then {idle} end '
        'local prod = network.get_flow_count{input=true, '
        'precision_index=defines.flow_precision_index.one_second} '
        'local cons = network.get_flow_count{input=false, '
        'precision_index=defines.flow_precision_index.one_second} '
        'local satisfaction = 1.0 '
        'if cons > 0 then satisfaction = math.min(1.0, prod / cons) end '
        'return {production_watts=prod, consumption_watts=cons, satisfaction=satisfaction}'
    )


def research_status() -> str:
    return _iife(
        'local force = p.force '
        'local current = force.current_research '
        'local result = {} '
        'if current then '
        '  result.current = current.name '
        '  result.progress = force.research_progress '
        'end '
        'local queue = {} '
        'if force.research_queue then '
        '  for i, tech in ipairs(force.research_queue) do '
        f'    if i > {MAX_RESEARCH_QUEUE} then break end '
        '    queue[#queue+1] = tech.name '
        '  end '
        'end '
        'result.queue = queue '
        'return result'
    )


def recipe(name: str) -> str:
    safe_name = sanitize_lua_string(name)
    return _iife(
        f'local r = prototypes.recipe["{safe_name}"] '
        f'if not r then return {{error="{RECIPE_NOT_FOUND}"}} end '
        'local ingredients = {} '
        'for _, ing in ipairs(r.ingredients) do '
        '  ingredients[#ingredients+1] = {name=ing.name, type=ing.type, amount=ing.amount} '
        'end '
        'local products = {} '
        'for _, prod in ipairs(r.products) do '
        '  products[#products+1] = {name=prod.name, type=prod.type, amount=prod.amount} '
        'end '
        'return {name=r.name, energy=r.energy, ingredients=ingredients, products=products}',
        player_check=False,
    )


def nearby_entities(radius: float) -> str:
    lua_radius = _lua_number(radius, "radius")
    skip = " and ".join(f'e.type ~= "{t}"' for t in NOISE_ENTITY_TYPES)
    return _iife(
        f'local ents = p.surface.find_entities_filtered{{position=p.position, radius={lua_radius}}} '
        'local result = {} '
        'local count = 0 '
        'for _, e in ipairs(ents) do '
        f'  if count >= {MAX_ENTITIES} then break end '
        f'  if {skip} then '
        '    result[#result+1] = {name=e.name, type=e.type, x=e.position.x, y=e.position.y} '
        '    count = count + 1 '
        '  end '
        'end '
        'return {entities=result}'
    )


def nearby_resources(radius: float) -> str:
    lua_radius = _lua_number(radius, "radius")
    return _iife(
        'local ents = p.surface.find_entities_filtered'
        f'{{type="resource", position=p.position, radius={lua_radius}}} '
        'local grouped = {} '
        'for _, e in ipairs(ents) do '
        '  local key = e.name '
        '  if not grouped[key] then '
        '    grouped[key] = {name=key, total_amount=0, sum_x=0, sum_y=0, count=0} '
        '  end '
        '  local g = grouped[key] '
        '  g.total_amount = g.total_amount + e.amount '
        '  g.sum_x = g.sum_x + e.position.x '
        '  g.sum_y = g.sum_y + e.position.y '
        '  g.count = g.count + 1 '
        'end '
        'local result = {} '
        'for _, g in pairs(grouped) do '
        '  result[#result+1] = {name=g.name, total_amount=g.total_amount, '
        '    center_x=g.sum_x/g.count, center_y=g.sum_y/g.count} '
        'end '
        'return {resources=result}'
    )


def assemblers(limit: int) -> str:
    lua_limit = _lua_limit(limit)
    return _iife(
        f'local ents = p.surface.find_entities_filtered{{type="assembling-machine", limit={lua_limit}}} '
        'local result = {} '
        'for _, e in ipairs(ents) do '
        '  local recipe_name = nil '
        '  local r = e.get_recipe() '
        '  if r then recipe_name = r.name end '
        '  result[#result+1] = {name=e.name, x=e.position.x, y=e.position.y, '
        '    recipe=recipe_name, crafting_speed=e.crafting_speed} '
        'end '
        'return {assemblers=result}'
    )


def _first_item(inventory_getter: str, var: str) -> str:
    return (
        f'local {var} = nil '
        f'local {var}_inv = e.{inventory_getter}() '
        f'if {var}_inv then '
        f'  for i = 1, #{var}_inv do '
        f'    local stack = {var}_inv[i] '
        f'    if stack.valid_for_read then {var} = stack.name break end '
        '  end '
        'end '
    )


def furnaces(limit: int) -> str:
    lua_limit = _lua_limit(limit)
    return _iife(
        f'local ents = p.surface.find_entities_filtered{{type="furnace", limit={lua_limit}}} '
        'local result = {} '
        'for _, e in ipairs(ents) do '
        '  local recipe_name = nil '
        '  local r = e.get_recipe() '
        '  if r then recipe_name = r.name end '
        + _first_item("get_fuel_inventory", "fuel_type")
        + _first_item("get_output_inventory", "output_item")
        + '  result[#result+1] = {name=e.name, x=e.position.x, y=e.position.y, '
        '    recipe=recipe_name, fuel_type=fuel_type, output_item=output_item} '
        'end '
        'return {furnaces=result}'
    )
