"""
Transforms the raw parser AST into a semantic AST using mage_datatypes.

The raw AST is a tree of dicts shaped like `{'tag', 'children', 'text',
'line', 'col'}`. Leaves carry their source text in `text`.
"""

from mage.mage_datatypes import (
    Program, Str, Num, Bool, ListLit, MapLit, Ident, BinOp, Call, MethodCall, Imbue,
    Condition, Conjure, Incant, Curse, Evoke, ScryChain, Loop, Channel, Chant, Recite,
    Invoke, Summon, Enchant, Cast, Bestow, Dispel, Portal
)

SKIPPED_TAGS = ('comment', 'line-comment', 'EOI')


def _strip_quotes(text: str) -> str:
    return text.strip('"')


class MageTransformer:
    def _attach_loc(self, obj, node):
        line = node.get('line'); col = node.get('col')
        if line is not None and col is not None and hasattr(obj, '__dict__'):
            obj.loc = {'line': line, 'col': col, 'tag': node.get('tag'), 'text': node.get('text')}
        return obj

    def transform(self, node: object) -> object:
        if isinstance(node, list):
            return [self.transform(n) for n in self._significant(node)]
        if not isinstance(node, dict):
            return node

        tag = node.get('tag')
        children = self._significant(node.get('children', []))

        match tag:
            # Structural containers
            case 'program':
                return self._attach_loc(Program(self.transform(children)), node)
            case 'block':
                return self.transform(children)
            case 'factor' | 'value' | 'group' | 'incantation' | 'statement':
                return self.transform(self._only(children, tag))

            # Statements
            case 'conjure':
                name, expr = self._need(children, tag, 2)
                return self._attach_loc(Conjure(self._name(name), self.transform(expr)), node)
            case 'incant':
                return self._attach_loc(Incant(self.transform(self._only(children, tag))), node)
            case 'summon':
                return self._attach_loc(Summon(self.transform(self._only(children, tag))), node)
            case 'bestow' | 'yield':
                return self._attach_loc(Bestow(self.transform(self._only(children, tag)), tag), node)
            case 'curse':
                return self._attach_loc(Curse(self._string_arg(children, tag)), node)
            case 'evoke':
                return self._attach_loc(Evoke(self._string_arg(children, tag)), node)
            case 'scry-chain':
                return self._attach_loc(self._scry_chain(children), node)
            case 'loop':
                return self._attach_loc(Loop(self._block(self._only(children, tag))), node)
            case 'channel':
                cond, body = self._need(children, tag, 2)
                return self._attach_loc(Channel(self.transform(cond), self._block(body)), node)
            case 'chant':
                return self._attach_loc(self._chant(children), node)
            case 'recite':
                var, iterable, body = self._need(children, tag, 3)
                return self._attach_loc(
                    Recite(self._name(var), self.transform(iterable), self._block(body)), node)
            case 'invoke':
                return self._attach_loc(self._invoke(children), node)
            case 'enchant':
                if len(children) < 2:
                    raise ValueError("enchant requires a name and a block")
                params = []
                if len(children) > 2:
                    params = [self._name(p) for p in self._significant(children[1].get('children', []))]
                return self._attach_loc(
                    Enchant(self._name(children[0]), params, self._block(children[-1])), node)
            case 'cast':
                name, args = self._call_parts(children, tag)
                return self._attach_loc(Cast(name, args), node)
            case 'dispel':
                return self._attach_loc(Dispel(), node)
            case 'portal':
                return self._attach_loc(Portal(), node)

            # Expressions
            case 'expression' | 'term':
                return self._fold(children, tag)
            case 'condition':
                left, op, right = self._need(children, tag, 3)
                return self._attach_loc(
                    Condition(self.transform(left), op.get('text', ''), self.transform(right)), node)
            case 'call':
                name, args = self._call_parts(children, tag)
                return self._attach_loc(Call(name, args), node)
            case 'method-call':
                if len(children) < 2:
                    raise ValueError("method-call requires a receiver and a method name")
                args = self._args(children[2]) if len(children) > 2 else []
                return self._attach_loc(
                    MethodCall(self.transform(children[0]), self._name(children[1]), args), node)
            case 'imbue':
                return self._attach_loc(Imbue(self._string_arg(children, tag)), node)
            case 'list':
                return self._attach_loc(ListLit(self.transform(children)), node)
            case 'map':
                entries = []
                for entry in children:
                    key, value = self._need(self._significant(entry.get('children', [])), 'map-entry', 2)
                    entries.append((_strip_quotes(key['text']), self.transform(value)))
                return self._attach_loc(MapLit(entries), node)

            # Atomics
            case 'string':
                return self._attach_loc(Str(_strip_quotes(node['text'])), node)
            case 'number':
                try:
                    value = float(node['text'])
                except ValueError:
                    value = 0.0
                return self._attach_loc(Num(value), node)
            case 'boolean':
                return self._attach_loc(Bool(node['text'] == 'true'), node)
            case 'ident':
                return self._attach_loc(Ident(node['text']), node)

        raise NotImplementedError(f"Unknown AST node tag: {tag}")

    # --- helpers ---

    def _significant(self, children):
        return [c for c in children if not (isinstance(c, dict) and c.get('tag') in SKIPPED_TAGS)]

    def _need(self, children, tag, count):
        if len(children) < count:
            raise ValueError(f"{tag} expects {count} children, got {len(children)}")
        return children[:count]

    def _only(self, children, tag):
        return self._need(children, tag, 1)[0]

    def _name(self, node) -> str:
        if not isinstance(node, dict) or 'text' not in node:
            raise ValueError(f"Expected an identifier, got {node!r}")
        return node['text']

    def _string_arg(self, children, tag) -> str:
        node = self._only(children, tag)
        if node.get('tag') != 'string':
            raise ValueError(f"{tag} expects a string literal")
        return _strip_quotes(node['text'])

    def _block(self, node):
        """Returns the statements of a block (or of a bare statement list)."""
        if isinstance(node, dict) and node.get('tag') == 'block':
            return self.transform(node.get('children', []))
        if isinstance(node, list):
            return self.transform(node)
        return [self.transform(node)]

    def _args(self, node):
        if isinstance(node, dict) and node.get('tag') == 'arg-list':
            return self.transform(node.get('children', []))
        return [self.transform(node)]

    def _call_parts(self, children, tag):
        if not children:
            raise ValueError(f"{tag} requires a function name")
        args = self._args(children[1]) if len(children) > 1 else []
        return self._name(children[0]), args

    def _fold(self, children, tag):
        """Builds a left-associative BinOp chain from operand (op operand)*."""
        if not children or len(children) % 2 == 0:
            raise ValueError(f"{tag} expects operand (op operand)*")
        result = self.transform(children[0])
        for i in range(1, len(children), 2):
            op = children[i].get('text', '')
            right = self.transform(children[i + 1])
            result = self._attach_loc(BinOp(result, op, right), children[i])
        return result

    def _scry_chain(self, children):
        cond, body = self._need(children, 'scry-chain', 2)
        morphs, lest = [], None
        for extra in children[2:]:
            match extra.get('tag'):
                case 'morph':
                    m_cond, m_body = self._need(
                        self._significant(extra.get('children', [])), 'morph', 2)
                    morphs.append((self.transform(m_cond), self._block(m_body)))
                case 'lest':
                    lest_children = self._significant(extra.get('children', []))
                    if len(lest_children) == 1 and lest_children[0].get('tag') == 'block':
                        lest = self._block(lest_children[0])
                    else:
                        lest = self.transform(lest_children)
                case other:
                    raise ValueError(f"Unexpected node in scry-chain: {other}")
        return ScryChain(self.transform(cond), self._block(body), morphs, lest)

    def _chant(self, children):
        if len(children) not in (4, 5):
            raise ValueError("chant expects var, start, end, optional step and a block")
        var, start, end = children[0], children[1], children[2]
        step = self.transform(children[3]) if len(children) == 5 else None
        return Chant(self._name(var), self.transform(start), self.transform(end), step,
                     self._block(children[-1]))

    def _invoke(self, children):
        body, seal = self._need(children, 'invoke', 2)
        seal_children = self._significant(seal.get('children', []))
        if not seal_children:
            raise ValueError("seal requires a block")
        error_var = None
        if len(seal_children) > 1 and seal_children[0].get('tag') == 'ident':
            error_var = seal_children[0]['text']
        return Invoke(self._block(body), error_var, self._block(seal_children[-1]))
