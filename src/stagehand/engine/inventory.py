"""
Stagehand Inventory Manager

Parses and manages inventory from INI and YAML files.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import yaml

from stagehand.engine.errors import InventoryError

logger = logging.getLogger(__name__)


# Canonical connection attribute -> accepted spellings, first wins
CONNECTION_ATTRS: Dict[str, Tuple[str, ...]] = {
    'connection': ('connection', 'ansible_connection'),
    'address': ('address', 'ansible_host'),
    'user': ('user', 'ansible_user'),
    'credential': ('credential', 'credential_path', 'ansible_ssh_private_key_file'),
    'port': ('port', 'ansible_port'),
}

CONNECTION_KINDS = ('local', 'ssh')

# Required for every host that is not local
REMOTE_REQUIRED = ('address', 'user', 'credential')

LOCAL_NAMES = ('localhost',)


def _lookup(variables: Dict[str, Any], attr: str) -> Any:
    for key in CONNECTION_ATTRS[attr]:
        if variables.get(key) is not None:
            return variables[key]
    return None


def _valid_port(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        port = int(value)
    except (TypeError, ValueError):
        return False
    return 1 <= port <= 65535


class Host:
    """Represents a single host in the inventory."""

    def __init__(self, name: str, variables: Optional[Dict[str, Any]] = None):
        self.name = name
        self.vars: Dict[str, Any] = variables.copy() if variables else {}
        self._groups: List[str] = []

    @property
    def connection(self) -> str:
        """Connection kind (local or ssh)."""
        value = _lookup(self.vars, 'connection')
        if value is None:
            return 'local' if self.name in LOCAL_NAMES else 'ssh'
        return str(value)

    @property
    def address(self) -> Optional[str]:
        value = _lookup(self.vars, 'address')
        return str(value) if value is not None else None

    @property
    def user(self) -> Optional[str]:
        value = _lookup(self.vars, 'user')
        return str(value) if value is not None else None

    @property
    def credential(self) -> Optional[str]:
        """Path to the private key used to authenticate."""
        value = _lookup(self.vars, 'credential')
        return str(value) if value is not None else None

    @property
    def port(self) -> int:
        return int(_lookup(self.vars, 'port') or 22)

    @property
    def is_local(self) -> bool:
        return self.connection == 'local'

    @property
    def groups(self) -> List[str]:
        """Return list of group names this host belongs to."""
        return list(self._groups)

    def add_group(self, group_name: str) -> None:
        if group_name not in self._groups:
            self._groups.append(group_name)

    def set_variable(self, key: str, value: Any) -> None:
        self.vars[key] = value

    def get_variable(self, key: str, default: Any = None) -> Any:
        return self.vars.get(key, default)

    def connection_attrs(self) -> Dict[str, Any]:
        """Connection attributes declared directly on this host."""
        return {
            attr: _lookup(self.vars, attr)
            for attr in CONNECTION_ATTRS
            if _lookup(self.vars, attr) is not None
        }

    def get_vars(self) -> Dict[str, Any]:
        """Return all host variables including computed ones."""
        result = self.vars.copy()
        result['inventory_hostname'] = self.name
        result['inventory_hostname_short'] = self.name.split('.')[0]
        result['group_names'] = sorted(g for g in self._groups if g != 'all')
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'connection': self.connection,
            'address': self.address,
            'user': self.user,
            'credential': self.credential,
            'port': self.port,
            'groups': self.groups,
        }

    def __repr__(self) -> str:
        return f"Host({self.name!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Host):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)


class Group:
    """Represents a group of hosts."""

    def __init__(self, name: str, variables: Optional[Dict[str, Any]] = None):
        self.name = name
        self.vars: Dict[str, Any] = variables.copy() if variables else {}
        self._hosts: List[str] = []
        self._children: List[str] = []
        self._parents: List[str] = []

    @property
    def hosts(self) -> List[str]:
        """Return list of host names directly in this group."""
        return list(self._hosts)

    @property
    def children(self) -> List[str]:
        return list(self._children)

    @property
    def parents(self) -> List[str]:
        return list(self._parents)

    def add_host(self, host_name: str) -> None:
        if host_name not in self._hosts:
            self._hosts.append(host_name)

    def add_child(self, group_name: str) -> None:
        if group_name not in self._children:
            self._children.append(group_name)

    def add_parent(self, group_name: str) -> None:
        if group_name not in self._parents:
            self._parents.append(group_name)

    def set_variable(self, key: str, value: Any) -> None:
        self.vars[key] = value

    def __repr__(self) -> str:
        return f"Group({self.name!r}, hosts={len(self._hosts)})"


class InventoryManager:
    """
    Manages inventory parsing and host resolution.

    Supports:
    - INI format inventory files
    - YAML format inventory files
    - Host patterns: groups, hosts, ``a,b``, ``!a`` and ``a:&b``

    ``all`` is an ordinary group that holds every host, so targeting all
    hosts is a group-membership query like any other.
    """

    # Pattern for host range expansion: web[01:10].example.com
    RANGE_PATTERN = re.compile(r'\[(\d+):(\d+)\]')
    # Pattern for INI variable assignment: key=value
    VAR_PATTERN = re.compile(r'(\w+)=(?:"([^"]*)"|\'([^\']*)\'|(\S+))')

    def __init__(self):
        self.hosts: Dict[str, Host] = {}
        self.groups: Dict[str, Group] = {}
        self._source: Optional[Path] = None

        # Always create 'all' and 'ungrouped' groups
        self.groups['all'] = Group('all')
        self.groups['ungrouped'] = Group('ungrouped')

    def parse(self, source: Union[str, Path]) -> 'InventoryManager':
        """
        Parse an inventory file.

        Args:
            source: Path to inventory file

        Returns:
            self for chaining

        Raises:
            InventoryError: If the file is missing, malformed, or describes
                a host without the connection fields it needs
        """
        source_path = Path(source)

        if not source_path.is_file():
            raise InventoryError(f"Inventory file does not exist: {source_path}")

        self._source = source_path
        content = source_path.read_text(encoding='utf-8')

        if source_path.suffix in ('.yml', '.yaml') or content.lstrip().startswith('---'):
            self.parse_yaml_string(content)
        else:
            self.parse_ini_string(content)

        self._finalize()
        logger.debug(
            "inventory %s: %d hosts, %d groups",
            source_path, len(self.hosts), len(self.groups),
        )
        return self

    def get_hosts(self, pattern: str = "all") -> List[Host]:
        """
        Get hosts matching a pattern, in inventory order.

        Supported patterns:
        - "all" - all hosts
        - "group_name" - all hosts in a group (including children)
        - "host_name" - single host
        - "host1,host2" - multiple hosts/groups
        - "group1:&group2" - intersection
        - "!group" - exclusion

        Args:
            pattern: Host pattern string

        Returns:
            List of matching Host objects
        """
        names = self._match(pattern or 'all')
        return [host for name, host in self.hosts.items() if name in names]

    def has_pattern(self, pattern: str) -> bool:
        """Whether every term of ``pattern`` names a known group or host."""
        for term in self._terms(pattern or 'all'):
            if term not in self.groups and term not in self.hosts:
                return False
        return True

    def _terms(self, pattern: str) -> List[str]:
        terms = []
        for part in pattern.split(','):
            for term in part.split(':&'):
                term = term.strip().lstrip('!')
                if term:
                    terms.append(term)
        return terms

    def _match(self, pattern: str) -> Set[str]:
        # Handle comma-separated patterns
        if ',' in pattern:
            result: Set[str] = set()
            excluded: Set[str] = set()
            for sub_pattern in pattern.split(','):
                sub_pattern = sub_pattern.strip()
                if not sub_pattern:
                    continue
                if sub_pattern.startswith('!'):
                    excluded |= self._match(sub_pattern[1:])
                else:
                    result |= self._match(sub_pattern)
            return result - excluded

        pattern = pattern.strip()

        if pattern.startswith('!'):
            return set(self.hosts) - self._match(pattern[1:])

        if ':&' in pattern:
            left, _, right = pattern.partition(':&')
            return self._match(left) & self._match(right)

        if pattern in self.groups:
            return self._group_host_names(pattern)

        if pattern in self.hosts:
            return {pattern}

        return set()

    def _group_host_names(self, group_name: str, seen: Optional[Set[str]] = None) -> Set[str]:
        """All hosts in a group, including from child groups."""
        seen = seen if seen is not None else set()
        if group_name in seen or group_name not in self.groups:
            return set()
        seen.add(group_name)

        group = self.groups[group_name]
        names = set(group.hosts)
        for child_name in group.children:
            names |= self._group_host_names(child_name, seen)
        return names

    def _ancestors(self, group_name: str, seen: Optional[Set[str]] = None) -> List[str]:
        """Ancestor groups of ``group_name``, outermost first."""
        seen = seen if seen is not None else set()
        result: List[str] = []
        for parent in self.groups[group_name].parents:
            if parent in seen:
                continue
            seen.add(parent)
            result.extend(self._ancestors(parent, seen))
            result.append(parent)
        return result

    def _finalize(self) -> None:
        """Apply implicit groups, inherit group vars, validate connections."""
        for host_name, host in self.hosts.items():
            self.groups['all'].add_host(host_name)
            explicit = [g for g in host.groups if g not in ('all', 'ungrouped')]
            if not explicit:
                self.groups['ungrouped'].add_host(host_name)
                host.add_group('ungrouped')

        # Child groups of nested definitions are members of their parents too
        for host in self.hosts.values():
            for group_name in list(host.groups):
                for ancestor in self._ancestors(group_name):
                    host.add_group(ancestor)
            host.add_group('all')

        for host in self.hosts.values():
            inherited: Dict[str, Any] = dict(self.groups['all'].vars)
            for group_name in host.groups:
                if group_name == 'all':
                    continue
                for ancestor in self._ancestors(group_name):
                    if ancestor != 'all':
                        inherited.update(self.groups[ancestor].vars)
                inherited.update(self.groups[group_name].vars)
            # Host vars override group vars
            inherited.update(host.vars)
            host.vars = inherited

        for host in self.hosts.values():
            self._validate_host(host)

    def _validate_host(self, host: Host) -> None:
        source = str(self._source) if self._source else None
        if host.connection not in CONNECTION_KINDS:
            raise InventoryError(
                f"Host '{host.name}' has unknown connection kind '{host.connection}' "
                f"(expected one of: {', '.join(CONNECTION_KINDS)})",
                file_path=source,
            )
        port = _lookup(host.vars, 'port')
        if port is not None and not _valid_port(port):
            raise InventoryError(
                f"Host '{host.name}' has invalid port {port!r} (expected 1-65535)",
                file_path=source,
            )
        if host.is_local:
            return
        missing = [attr for attr in REMOTE_REQUIRED if _lookup(host.vars, attr) is None]
        if missing:
            raise InventoryError(
                f"Host '{host.name}' is missing required connection fields: "
                f"{', '.join(missing)}",
                file_path=source,
            )

    def _add_host(self, name: str, variables: Dict[str, Any], group_name: Optional[str]) -> Host:
        """Declare a host, merging repeated declarations of the same identifier."""
        new_host = Host(name, variables=variables)
        existing = self.hosts.get(name)
        if existing is None:
            self.hosts[name] = new_host
            host = new_host
        else:
            old_attrs = existing.connection_attrs()
            for attr, value in new_host.connection_attrs().items():
                if attr in old_attrs and str(old_attrs[attr]) != str(value):
                    raise InventoryError(
                        f"Host '{name}' is declared more than once with conflicting "
                        f"'{attr}' ({old_attrs[attr]!r} vs {value!r})",
                        file_path=str(self._source) if self._source else None,
                    )
            for key, value in variables.items():
                existing.set_variable(key, value)
            host = existing

        if group_name:
            self._ensure_group(group_name).add_host(name)
            host.add_group(group_name)
        return host

    def _ensure_group(self, name: str) -> Group:
        if name not in self.groups:
            self.groups[name] = Group(name)
        return self.groups[name]

    def parse_ini_string(self, content: str) -> None:
        """Parse INI format inventory."""
        current_group: Optional[str] = None
        current_section: Optional[str] = None  # 'hosts', 'vars', 'children'

        for line_num, raw_line in enumerate(content.splitlines(), 1):
            line = raw_line.strip()

            # Skip empty lines and comments
            if not line or line.startswith('#') or line.startswith(';'):
                continue

            if line.startswith('['):
                if not line.endswith(']'):
                    raise InventoryError(
                        f"Malformed group header at line {line_num}: {line}",
                        file_path=str(self._source) if self._source else None,
                    )
                header = line[1:-1].strip()
                if header.endswith(':vars'):
                    current_section = 'vars'
                    header = header[:-len(':vars')]
                elif header.endswith(':children'):
                    current_section = 'children'
                    header = header[:-len(':children')]
                else:
                    current_section = 'hosts'
                current_group = header.strip()
                self._ensure_group(current_group)
                continue

            if current_section == 'vars':
                key, value = self._parse_variable_line(line)
                if not key:
                    raise InventoryError(
                        f"Expected key=value at line {line_num}: {line}",
                        file_path=str(self._source) if self._source else None,
                    )
                self.groups[current_group].set_variable(key, value)

            elif current_section == 'children':
                child = self._ensure_group(line)
                self.groups[current_group].add_child(child.name)
                child.add_parent(current_group)

            else:
                name, variables = self._parse_host_line(line)
                for host_name in self._expand_host_pattern(name):
                    self._add_host(host_name, variables, current_group)

    def _parse_host_line(self, line: str) -> Tuple[str, Dict[str, Any]]:
        """Parse a single host line into its name and inline variables."""
        parts = line.split(None, 1)
        name = parts[0]
        var_string = parts[1] if len(parts) > 1 else ''
        variables: Dict[str, Any] = {}
        for match in self.VAR_PATTERN.finditer(var_string):
            key = match.group(1)
            value = next(g for g in match.groups()[1:] if g is not None)
            variables[key] = self._convert_value(value)
        return name, variables

    def _expand_host_pattern(self, pattern: str) -> List[str]:
        """Expand host patterns like web[01:03].example.com."""
        match = self.RANGE_PATTERN.search(pattern)
        if not match:
            return [pattern]

        start = int(match.group(1))
        end = int(match.group(2))
        width = len(match.group(1))

        results = []
        for i in range(start, end + 1):
            expanded = pattern[:match.start()] + str(i).zfill(width) + pattern[match.end():]
            results.extend(self._expand_host_pattern(expanded))
        return results

    def _parse_variable_line(self, line: str) -> Tuple[str, Any]:
        if '=' not in line:
            return '', None

        key, _, value = line.partition('=')
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        return key.strip(), self._convert_value(value)

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate Python type."""
        if value.lower() in ('true', 'yes'):
            return True
        if value.lower() in ('false', 'no'):
            return False
        try:
            return int(value)
        except ValueError:
            return value

    def parse_yaml_string(self, content: str) -> None:
        """Parse YAML format inventory."""
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise InventoryError(
                f"YAML syntax error: {e}",
                file_path=str(self._source) if self._source else None,
            )
        if data is None:
            return
        if not isinstance(data, dict):
            raise InventoryError(
                f"Inventory must be a mapping of groups, got {type(data).__name__}",
                file_path=str(self._source) if self._source else None,
            )
        for group_name, group_data in data.items():
            self._parse_yaml_group(str(group_name), group_data or {})

    def _parse_yaml_group(self, name: str, data: Any) -> None:
        """Parse a single group from YAML inventory."""
        group = self._ensure_group(name)
        source = str(self._source) if self._source else None

        if not isinstance(data, dict):
            raise InventoryError(f"Group '{name}' must be a mapping", file_path=source)

        hosts_data = self._yaml_members(data, 'hosts', name)
        for host_name, host_vars in hosts_data.items():
            host_vars = host_vars or {}
            if not isinstance(host_vars, dict):
                raise InventoryError(
                    f"Attributes of host '{host_name}' must be a mapping", file_path=source
                )
            self._add_host(str(host_name), host_vars, name)

        vars_data = data.get('vars') or {}
        if not isinstance(vars_data, dict):
            raise InventoryError(f"'vars' of group '{name}' must be a mapping", file_path=source)
        for key, value in vars_data.items():
            group.set_variable(key, value)

        children_data = self._yaml_members(data, 'children', name)
        for child_name, child_data in children_data.items():
            child_name = str(child_name)
            group.add_child(child_name)
            self._parse_yaml_group(child_name, child_data or {})
            self.groups[child_name].add_parent(name)

    def _yaml_members(self, data: Dict[str, Any], key: str, group_name: str) -> Dict[str, Any]:
        """``hosts`` or ``children`` of a YAML group as a name -> data mapping."""
        source = str(self._source) if self._source else None
        members = data.get(key) or {}
        if isinstance(members, list) and not any(isinstance(m, (dict, list)) for m in members):
            members = {m: {} for m in members}
        if not isinstance(members, dict):
            raise InventoryError(
                f"'{key}' of group '{group_name}' must be a mapping or a list of names",
                file_path=source,
            )
        return members

    def to_dict(self) -> Dict[str, Any]:
        """Inventory in the ``--list`` JSON shape."""
        result: Dict[str, Any] = {
            '_meta': {'hostvars': {name: h.vars for name, h in self.hosts.items()}},
        }
        for name, group in self.groups.items():
            entry: Dict[str, Any] = {'hosts': group.hosts}
            if group.children:
                entry['children'] = group.children
            if group.vars:
                entry['vars'] = group.vars
            result[name] = entry
        return result
