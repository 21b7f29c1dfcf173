"""Scope rewriting for raw Python tags.

Raw statements are written against bare names (``<% total = price * 2 %>``).
ScopeTransformer rewrites them onto the explicit variable scope of the
function they are compiled into:

* loads become ``_lookup(vars, 'name')`` (scope chain, then helpers,
  then renderer members, then builtins)
* stores and deletes become ``vars['name']``
* ``(name := value)`` becomes ``_assign(vars, 'name', value)``
* names bound by ``def``, ``class``, ``import`` and ``except ... as`` are
  mirrored into ``vars`` right after the binding statement

Parameters of lambdas and nested functions, comprehension targets and
class bodies keep Python's own scoping.
"""

from __future__ import annotations

import ast

SCOPE_NAME = "vars"
LOOKUP_NAME = "_lookup"
ASSIGN_NAME = "_assign"

RESERVED_NAMES: frozenset[str] = frozenset({SCOPE_NAME})


def _load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def scope_store(name: str) -> ast.Subscript:
    """``vars['name']`` as an assignment target."""
    return ast.Subscript(value=_load(SCOPE_NAME), slice=ast.Constant(value=name), ctx=ast.Store())


def _mirror(name: str, node: ast.AST) -> ast.stmt:
    """``vars['name'] = name``"""
    return ast.copy_location(ast.Assign(targets=[scope_store(name)], value=_load(name)), node)


def _argument_names(args: ast.arguments) -> set[str]:
    names = {a.arg for a in (*args.posonlyargs, *args.args, *args.kwonlyargs)}
    if args.vararg:
        names.add(args.vararg.arg)
    if args.kwarg:
        names.add(args.kwarg.arg)
    return names


def _target_names(target: ast.AST) -> set[str]:
    return {n.id for n in ast.walk(target) if isinstance(n, ast.Name)}


def _bound_names(body: list[ast.stmt]) -> set[str]:
    """Names a function or class body binds locally."""
    names: set[str] = set()
    for stmt in body:
        for node in ast.walk(stmt):
            if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
                names.add(node.id)
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                names.add(node.name)
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                for alias in node.names:
                    names.add((alias.asname or alias.name).split(".")[0])
            elif isinstance(node, ast.ExceptHandler) and node.name:
                names.add(node.name)
    return names


def _import_names(node: ast.Import | ast.ImportFrom) -> list[str]:
    return [
        (alias.asname or alias.name).split(".")[0]
        for alias in node.names
        if alias.name != "*"
    ]


class ScopeTransformer(ast.NodeTransformer):
    """Rewrite free names of raw code onto the ``vars`` scope."""

    def __init__(self) -> None:
        self._locals: list[set[str]] = []

    @property
    def _at_top(self) -> bool:
        return not self._locals

    def _is_local(self, name: str) -> bool:
        return name in RESERVED_NAMES or any(name in scope for scope in self._locals)

    def _visit_list(self, items: list[ast.AST]) -> list[ast.AST]:
        out: list[ast.AST] = []
        for item in items:
            result = self.visit(item)
            if isinstance(result, list):
                out.extend(result)
            elif result is not None:
                out.append(result)
        return out

    # Names -------------------------------------------------------------

    def visit_Name(self, node: ast.Name) -> ast.AST:
        if self._is_local(node.id):
            return node
        if isinstance(node.ctx, ast.Load):
            call = ast.Call(
                func=_load(LOOKUP_NAME),
                args=[_load(SCOPE_NAME), ast.Constant(value=node.id)],
                keywords=[],
            )
            return ast.copy_location(call, node)
        target = ast.Subscript(
            value=_load(SCOPE_NAME),
            slice=ast.Constant(value=node.id),
            ctx=node.ctx,
        )
        return ast.copy_location(target, node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> ast.AST:
        if self._is_local(node.target.id):
            node.value = self.visit(node.value)
            return node
        call = ast.Call(
            func=_load(ASSIGN_NAME),
            args=[_load(SCOPE_NAME), ast.Constant(value=node.target.id), self.visit(node.value)],
            keywords=[],
        )
        return ast.copy_location(call, node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> ast.AST:
        self.generic_visit(node)
        if not isinstance(node.target, ast.Name):
            node.simple = 0
        return node

    # Nested scopes -----------------------------------------------------

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        node.args = self.visit(node.args)
        self._locals.append(_argument_names(node.args))
        node.body = self.visit(node.body)
        self._locals.pop()
        return node

    def _visit_comprehension(self, node: ast.AST) -> ast.AST:
        generators: list[ast.comprehension] = node.generators
        # The first iterable is evaluated in the enclosing scope
        generators[0].iter = self.visit(generators[0].iter)
        names: set[str] = set()
        for generator in generators:
            names |= _target_names(generator.target)
        self._locals.append(names)
        for index, generator in enumerate(generators):
            if index:
                generator.iter = self.visit(generator.iter)
            generator.ifs = [self.visit(cond) for cond in generator.ifs]
        if isinstance(node, ast.DictComp):
            node.key = self.visit(node.key)
            node.value = self.visit(node.value)
        else:
            node.elt = self.visit(node.elt)
        self._locals.pop()
        return node

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST | list[ast.AST]:
        at_top = self._at_top
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.args = self.visit(node.args)
        if node.returns is not None:
            node.returns = self.visit(node.returns)
        self._locals.append(_argument_names(node.args) | _bound_names(node.body))
        node.body = self._visit_list(node.body)
        self._locals.pop()
        if at_top:
            return [node, _mirror(node.name, node)]
        return node

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST | list[ast.AST]:
        at_top = self._at_top
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.bases = [self.visit(b) for b in node.bases]
        node.keywords = [self.visit(k) for k in node.keywords]
        self._locals.append(_bound_names(node.body))
        node.body = self._visit_list(node.body)
        self._locals.pop()
        if at_top:
            return [node, _mirror(node.name, node)]
        return node

    # Binding statements ------------------------------------------------

    def _visit_import(self, node: ast.Import | ast.ImportFrom) -> ast.AST | list[ast.AST]:
        if not self._at_top:
            return node
        return [node, *(_mirror(name, node) for name in _import_names(node))]

    visit_Import = _visit_import
    visit_ImportFrom = _visit_import

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> ast.AST:
        if node.type is not None:
            node.type = self.visit(node.type)
        node.body = self._visit_list(node.body)
        if node.name and not self._is_local(node.name):
            node.body.insert(0, _mirror(node.name, node))
        return node


def rewrite_names(tree: ast.AST) -> ast.AST:
    """Apply ScopeTransformer and fill in missing locations."""
    tree = ScopeTransformer().visit(tree)
    return ast.fix_missing_locations(tree)
