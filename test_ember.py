import io
import math
import tempfile
import unittest
from contextlib import redirect_stdout, redirect_stderr
from pathlib import Path

from ember import (
    Lexer, Parser, TokenType, Environment, Interpreter, SourceLoader, EmberREPL,
    Integer, Real, String, Array, Hash, Error, Function, ClassInstance,
    TRUE, FALSE, NULL, parse, format_parser_errors, run_source, run_file, main,
    load_test_suite,
)


def evaluate(source, interpreter=None):
    result, errors = run_source(source, interpreter or Interpreter(search_paths=[]))
    return result


def parse_source(source):
    return parse(Lexer(source).scan_tokens(), source)


class TestLexer(unittest.TestCase):
    def test_operators_and_literals(self):
        tokens = Lexer('var x = 10; x++ != 3.5 "a\\nb"').scan_tokens()
        types = [t.type for t in tokens]
        self.assertEqual(types, [
            TokenType.VAR, TokenType.IDENTIFIER, TokenType.EQUAL, TokenType.INTEGER,
            TokenType.SEMICOLON, TokenType.IDENTIFIER, TokenType.PLUS_PLUS,
            TokenType.BANG_EQUAL, TokenType.REAL, TokenType.STRING, TokenType.EOF,
        ])
        self.assertEqual(tokens[-2].literal, "a\nb")
        self.assertEqual(tokens[-3].literal, "3.5")

    def test_keywords_are_case_sensitive(self):
        tokens = Lexer("Init init class this new elif").scan_tokens()
        self.assertEqual([t.type for t in tokens[:-1]], [
            TokenType.INIT, TokenType.IDENTIFIER, TokenType.CLASS,
            TokenType.THIS, TokenType.NEW, TokenType.ELIF,
        ])

    def test_comments_are_skipped(self):
        tokens = Lexer("1 // one\n/* two\nlines */ 2").scan_tokens()
        self.assertEqual([t.literal for t in tokens[:-1]], ["1", "2"])
        self.assertEqual(tokens[1].line, 3)

    def test_unterminated_string(self):
        lexer = Lexer('"oops')
        lexer.scan_tokens()
        self.assertTrue(lexer.has_errors())
        self.assertIn("Unterminated string", lexer.errors[0].message)


class TestParser(unittest.TestCase):
    def assertParsesAs(self, source, expected):
        program, errors = parse_source(source)
        self.assertEqual(errors, [])
        self.assertEqual(str(program), expected)

    def test_operator_precedence(self):
        self.assertParsesAs("-a * b", "((-a) * b)")
        self.assertParsesAs("!-a", "(!(-a))")
        self.assertParsesAs("a + b * c", "(a + (b * c))")
        self.assertParsesAs("a + b - c", "((a + b) - c)")
        self.assertParsesAs("a % b * c", "((a % b) * c)")
        self.assertParsesAs("a < b == c > d", "((a < b) == (c > d))")
        self.assertParsesAs("3 + 4; -5 * 5", "(3 + 4)((-5) * 5)")
        self.assertParsesAs("(5 + 5) * 2", "((5 + 5) * 2)")
        self.assertParsesAs("x = y + 1", "(x = (y + 1))")

    def test_calls_and_indexing(self):
        self.assertParsesAs("add(a, b)", "add(a, b)")
        self.assertParsesAs("a * [1, 2, 3, 4][b * c] * d",
                            "((a * ([1, 2, 3, 4][(b * c)])) * d)")
        self.assertParsesAs("add(a * b[2], b[1])", "add((a * (b[2])), (b[1]))")

    def test_statements(self):
        program, errors = parse_source("var x = 5; return x; func Twice(n) { n * 2 }")
        self.assertEqual(errors, [])
        self.assertEqual(len(program.statements), 3)
        func = program.statements[2]
        self.assertEqual(func.name.value, "Twice")
        self.assertTrue(func.is_public)

    def test_if_with_elif_branches(self):
        program, errors = parse_source("if (a) { 1 } elif (b) { 2 } elif (c) { 3 } else { 4 }")
        self.assertEqual(errors, [])
        expr = program.statements[0].expression
        self.assertEqual(len(expr.branches), 3)
        self.assertIsNotNone(expr.alternative)

    def test_loops(self):
        program, errors = parse_source("for (i from 0 to 10) { i }; for (x in items) { x }")
        self.assertEqual(errors, [])
        counting, collection = [s.expression for s in program.statements]
        self.assertEqual(counting.variable.value, "i")
        self.assertEqual(collection.target.value, "items")

    def test_bad_loop_continuation(self):
        program, errors = parse_source("for (i at 3) { i }")
        self.assertEqual(errors[0], "expected next token to be from or in, got IDENTIFIER instead")

    def test_class_statement(self):
        source = """
        class Point {
            var x = 0
            var y = 0
            Init(this.x, scale) { y = scale }
            func Norm() { return x * x + y * y }
            func helper() { return 1 }
        }
        """
        program, errors = parse_source(source)
        self.assertEqual(errors, [])
        stmt = program.statements[0]
        self.assertEqual([f.name.value for f in stmt.fields], ["x", "y"])
        self.assertEqual([m.name.value for m in stmt.methods], ["Norm", "helper"])
        self.assertEqual([p.is_this for p in stmt.init_params], [True, False])
        self.assertFalse(stmt.methods[1].is_public)

    def test_errors_are_collected(self):
        program, errors = parse_source("var = 5;")
        self.assertEqual(errors[0], "expected next token to be IDENTIFIER, got = instead")
        self.assertIn("no prefix parse function for = found", errors)

    def test_integer_out_of_range(self):
        program, errors = parse_source("99999999999999999999")
        self.assertEqual(errors, ['could not parse "99999999999999999999" as integer'])

    def test_unclosed_block(self):
        program, errors = parse_source("if (true) { 1")
        self.assertEqual(errors, ["expected next token to be }, got EOF instead"])

    def test_format_parser_errors(self):
        self.assertEqual(format_parser_errors(["a", "b"]), "parser errors:\n\t- a\n\t- b")


class TestEnvironment(unittest.TestCase):
    def test_get_walks_parents(self):
        outer = Environment()
        outer.set("a", Integer(1))
        inner = Environment(outer)
        self.assertEqual(inner.get("a").value, 1)
        self.assertIsNone(inner.get("missing"))

    def test_update_never_declares(self):
        outer = Environment()
        inner = Environment(outer)
        self.assertFalse(inner.update("a", Integer(1)))
        self.assertIsNone(outer.get("a"))

        outer.set("a", Integer(1))
        self.assertTrue(inner.update("a", Integer(2)))
        self.assertEqual(outer.get("a").value, 2)
        self.assertNotIn("a", inner.values)

    def test_outermost(self):
        root = Environment()
        middle = Environment(root)
        leaf = Environment(middle)
        middle.set("v", Integer(1))
        root.set("v", Integer(2))

        self.assertIs(leaf.outermost(), root)
        self.assertEqual(leaf.get("v").value, 1)
        self.assertEqual(leaf.get_outermost("v").value, 2)
        self.assertTrue(leaf.update_outermost("v", Integer(3)))
        self.assertEqual(root.get("v").value, 3)
        self.assertFalse(leaf.update_outermost("w", Integer(3)))

    def test_copy_detached(self):
        parent = Environment()
        env = Environment(parent)
        env.set("a", Integer(1))
        copy = env.copy_detached()
        copy.set("b", Integer(2))

        self.assertIsNone(copy.parent)
        self.assertEqual(copy.get("a").value, 1)
        self.assertIsNone(env.get("b"))


class TestObjects(unittest.TestCase):
    def test_hash_keys(self):
        self.assertEqual(String("name").hash_key(), String("name").hash_key())
        self.assertEqual(Integer(1).hash_key(), Integer(1).hash_key())
        self.assertNotEqual(Integer(1).hash_key(), String("1").hash_key())
        self.assertNotEqual(Integer(1).hash_key(), Real(1.0).hash_key())
        self.assertNotEqual(Integer(1).hash_key(), TRUE.hash_key())

    def test_inspect(self):
        self.assertEqual(evaluate('{"a": 1}').inspect(), "{a: 1}")
        self.assertEqual(evaluate("[1, \"two\", true, null]").inspect(), "[1, two, true, null]")
        self.assertEqual(evaluate("func(x, y) { x + y }").inspect(), "func(x, y) {\n(x + y)\n}")
        self.assertEqual(evaluate("len").inspect(), "builtin function len")
        self.assertEqual(Error("boom").inspect(), "ERROR: boom")


class TestEvaluator(unittest.TestCase):
    def assertValue(self, source, expected):
        result = evaluate(source)
        self.assertNotIsInstance(result, Error, getattr(result, "message", None))
        self.assertEqual(result.value, expected)

    def assertError(self, source, message):
        result = evaluate(source)
        self.assertIsInstance(result, Error)
        self.assertEqual(result.message, message)

    def test_integer_arithmetic(self):
        self.assertValue("5 + 5 * 2", 15)
        self.assertValue("(5 + 5) * 2", 20)
        self.assertValue("-7 / 2", -3)
        self.assertValue("-7 % 2", -1)
        self.assertValue("7 % -2", 1)
        self.assertValue("9223372036854775807 + 1", -9223372036854775808)

    def test_real_arithmetic(self):
        self.assertValue("1.5 + 1", 2.5)
        self.assertValue("7 / 2.0", 3.5)
        self.assertIs(evaluate("1 < 2.5"), TRUE)

    def test_division_by_zero(self):
        self.assertError("1 / 0", "division by zero")
        self.assertError("1 % 0", "division by zero")

    def test_real_division_by_zero(self):
        self.assertValue("1.0 / 0", math.inf)
        self.assertValue("-1 / 0.0", -math.inf)
        self.assertTrue(math.isnan(evaluate("0.0 / 0").value))
        self.assertTrue(math.isnan(evaluate("5.5 % 0").value))

    def test_comparisons_and_booleans(self):
        self.assertIs(evaluate("1 < 2"), TRUE)
        self.assertIs(evaluate("1 == 2"), FALSE)
        self.assertIs(evaluate("true == true"), TRUE)
        self.assertIs(evaluate("true != false"), TRUE)
        self.assertIs(evaluate("!5"), FALSE)
        self.assertIs(evaluate("!null"), TRUE)
        self.assertIs(evaluate('"a" == "a"'), TRUE)

    def test_operator_errors(self):
        self.assertError("5 + true", "type mismatch: INTEGER + BOOLEAN")
        self.assertError("true + false", "unknown operator: BOOLEAN + BOOLEAN")
        self.assertError("-true", "unknown operator: -BOOLEAN")
        self.assertError('"a" - "b"', "unknown operator: STRING - STRING")

    def test_errors_stop_evaluation(self):
        self.assertError("var a = 1 / 0; 5", "division by zero")
        self.assertError("if (10 > 1) { true + false; 10 }", "unknown operator: BOOLEAN + BOOLEAN")

    def test_string_concatenation(self):
        self.assertValue('"Hello" + " " + "World"', "Hello World")

    def test_var_and_assignment(self):
        self.assertValue("var a = 5; a = a * 2; a", 10)
        self.assertValue("var a = 1; var b = a = 7; b", 7)
        self.assertError("x = 5", "x is not defined")
        self.assertError("foobar", "identifier not found: foobar")

    def test_if_elif_else(self):
        self.assertValue("if (1 > 2) { 10 } elif (2 > 1) { 20 } else { 30 }", 20)
        self.assertValue("if (false) { 10 } elif (false) { 20 } else { 30 }", 30)
        self.assertIs(evaluate("if (false) { 10 }"), NULL)
        self.assertValue("if (0) { 1 } else { 2 }", 1)

    def test_return(self):
        self.assertValue("return 7; 8", 7)
        self.assertValue("if (true) { if (true) { return 10 } return 1 }", 10)

    def test_counting_loop(self):
        self.assertValue("var n = 0; for (i from 0 to 5) { n = n + 1 }; n", 5)
        self.assertValue("var s = 0; for (i from 5 to 2) { s = s * 10 + i }; s", 543)
        self.assertValue("var n = 0; for (i from 3 to 3) { n = n + 1 }; n", 0)
        self.assertError("for (i from 0 to 2) { }; i", "identifier not found: i")
        self.assertError('for (i from "a" to 2) { }',
                         "'from' expression in forloop was not integer. got=STRING")

    def test_collection_loop(self):
        self.assertValue('var out = ""; var xs = ["a", "b", "c"]; for (x in xs) { out = out + x }; out', "abc")
        self.assertError("var xs = 5; for (x in xs) { x }", "xs is not an array. got=INTEGER")
        self.assertError("for (x in nothing) { x }", "nothing is not defined")

    def test_return_inside_loop(self):
        source = """
        func Find() {
            for (i from 0 to 10) {
                if (i == 3) { return i }
            }
            return -1
        }
        Find()
        """
        self.assertValue(source, 3)

    def test_functions_and_closures(self):
        self.assertValue("var identity = func(x) { x }; identity(5)", 5)
        self.assertValue("func(x) { x * 2 }(4)", 8)
        self.assertValue("var newAdder = func(x) { func(y) { x + y } }; var addTwo = newAdder(2); addTwo(3)", 5)

    def test_closure_state(self):
        source = """
        func makeCounter() {
            var count = 0
            return func() { count = count + 1; count }
        }
        var next = makeCounter()
        next()
        next()
        """
        self.assertValue(source, 2)

    def test_recursion(self):
        self.assertValue("func Fib(n) { if (n < 2) { return n } return Fib(n - 1) + Fib(n - 2) }; Fib(10)", 55)

    def test_deep_recursion(self):
        self.assertValue("func Sum(n) { if (n == 0) { return 0 } return n + Sum(n - 1) }; Sum(1000)", 500500)

    def test_call_errors(self):
        self.assertError("func(x) { x }(1, 2)", "wrong number of arguments. got=2, want=1")
        self.assertError("5()", "not a function: INTEGER")

    def test_arrays_and_hashes(self):
        self.assertValue("[1, 2, 3][1]", 2)
        self.assertIs(evaluate("[1, 2, 3][3]"), NULL)
        self.assertIs(evaluate("[1, 2, 3][-1]"), NULL)
        self.assertValue('{"a": 1, 2: "b", true: 3}["a"]', 1)
        self.assertValue('{"a": 1, 2: "b", true: 3}[2]', "b")
        self.assertIs(evaluate('{"a": 1}["b"]'), NULL)
        self.assertValue('len({1: "int", "1": "str", 1.0: "real"})', 3)
        self.assertError("{func(x) { x }: 1}", "unusable as hash key: FUNCTION")
        self.assertError('{"a": 1}[[1]]', "unusable as hash key: ARRAY")
        self.assertError("1[0]", "index operator not supported: INTEGER")

    def test_increment_and_decrement(self):
        self.assertValue("var i = 1; i++; i", 2)
        self.assertValue("var i = 1; i--; i--; i", -1)
        self.assertValue("var a = 1; var b = a; a++; b", 2)
        self.assertError('var s = "x"; s++', "unknown operator: STRING++")
        self.assertError("missing++", "missing is not defined")

    def test_interpreter_keeps_globals(self):
        interpreter = Interpreter(search_paths=[])
        evaluate("var total = 40", interpreter)
        evaluate("total = total + 2", interpreter)
        self.assertEqual(interpreter.globals.get("total").value, 42)


class TestBuiltins(unittest.TestCase):
    def test_len(self):
        self.assertEqual(evaluate('len("")').value, 0)
        self.assertEqual(evaluate('len("hello")').value, 5)
        self.assertEqual(evaluate("len([1, 2, 3])").value, 3)
        self.assertEqual(evaluate("len(1)").message, "argument to `len` not supported, got INTEGER")
        self.assertEqual(evaluate('len("a", "b")').message, "wrong number of arguments. got=2, want=1")

    def test_first_last_rest(self):
        self.assertEqual(evaluate("first([1, 2, 3])").value, 1)
        self.assertEqual(evaluate("last([1, 2, 3])").value, 3)
        self.assertEqual(evaluate("rest([1, 2, 3])").inspect(), "[2, 3]")
        self.assertIs(evaluate("first([])"), NULL)
        self.assertIs(evaluate("rest([])"), NULL)
        self.assertIsInstance(evaluate("first(1)"), Error)

    def test_add(self):
        self.assertEqual(evaluate("var a = [1]; var b = add(a, 2); b").inspect(), "[1, 2]")
        self.assertEqual(evaluate("var a = [1]; var b = add(a, 2); a").inspect(), "[1]")
        self.assertEqual(evaluate('add({"a": 1}, "b", 2)["b"]').value, 2)

    def test_remove(self):
        self.assertEqual(evaluate("remove([1, 2, 3], 1)").inspect(), "[1, 3]")
        self.assertEqual(evaluate('var h = {"a": 1, "b": 2}; remove(h, "a"); len(h)').value, 1)
        self.assertEqual(evaluate("remove([1], 5)").message,
                         "index parameter must be between 0 and length of arr - 1")
        self.assertEqual(evaluate('remove({"a": 1}, "z")').message, "key not found in hash")

    def test_print(self):
        out = io.StringIO()
        with redirect_stdout(out):
            result = evaluate('print("hi", 3)')
        self.assertIs(result, NULL)
        self.assertEqual(out.getvalue(), "hi\n3\n")

    def test_user_binding_shadows_builtin(self):
        self.assertEqual(evaluate("var len = func(x) { 99 }; len([1])").value, 99)


class TestClasses(unittest.TestCase):
    COUNTER = """
    class Counter {
        var count = 0
        func Increment() { count = count + 1; return count }
        func Bump() { count++; return count }
        func Get() { return count }
    }
    """

    def test_instances_are_independent(self):
        source = self.COUNTER + """
        var a = new Counter()
        var b = new Counter()
        a.Increment()
        a.Increment()
        b.Increment()
        """
        interpreter = Interpreter(search_paths=[])
        evaluate(source, interpreter)
        self.assertEqual(evaluate("a.Get()", interpreter).value, 2)
        self.assertEqual(evaluate("b.Get()", interpreter).value, 1)

    def test_increment_does_not_leak_between_instances(self):
        source = self.COUNTER + """
        var a = new Counter()
        var b = new Counter()
        a.Bump()
        a.Bump()
        b.Get()
        """
        self.assertEqual(evaluate(source).value, 0)

    def test_this_prefix_reaches_field(self):
        source = """
        class Box {
            var value = 1
            func Shadow(value) { return this.value + value }
            func Set(v) { this.value = v; return value }
        }
        var b = new Box()
        """
        interpreter = Interpreter(search_paths=[])
        evaluate(source, interpreter)
        self.assertEqual(evaluate("b.Shadow(10)", interpreter).value, 11)
        self.assertEqual(evaluate("b.Set(5)", interpreter).value, 5)

    def test_this_prefix_ignores_loop_variable(self):
        source = """
        class Summer {
            var i = 10
            func Total() {
                var s = 0
                for (i from 0 to 3) { s = s + this.i }
                return s
            }
        }
        var t = new Summer()
        t.Total()
        """
        self.assertEqual(evaluate(source).value, 30)

    def test_private_methods(self):
        source = """
        class Secret {
            var n = 42
            func hidden() { return n }
            func Reveal() { return hidden() }
        }
        var s = new Secret()
        """
        interpreter = Interpreter(search_paths=[])
        evaluate(source, interpreter)
        self.assertEqual(evaluate("s.Reveal()", interpreter).value, 42)
        result = evaluate("s.hidden()", interpreter)
        self.assertIsInstance(result, Error)
        self.assertEqual(result.message, "hidden is not a public function in Secret")

    def test_constructor(self):
        source = """
        class Point {
            var x = 0
            var y = 0
            var sum = 0
            Init(this.x, this.y) { sum = x + y }
        }
        new Point(3, 4)
        """
        result = evaluate(source)
        self.assertIsInstance(result, ClassInstance)
        self.assertEqual(result.inspect(), "Point{x: 3, y: 4, sum: 7}")

    def test_constructor_plain_parameter(self):
        source = """
        class Account {
            var owner = ""
            var balance = 0
            Init(this.owner, opening) { balance = opening * 2 }
        }
        new Account("ada", 5)
        """
        self.assertEqual(evaluate(source).inspect(), "Account{owner: ada, balance: 10}")

    def test_constructor_arity(self):
        point = "class Point { var x = 0 Init(this.x) { } }\n"
        self.assertEqual(evaluate(point + "new Point(1, 2)").message,
                         "wrong number of arguments for Point. got=2, want=1")
        self.assertEqual(evaluate(self.COUNTER + "new Counter(1)").message,
                         "wrong number of arguments for Counter. got=1, want=0")

    def test_method_call_errors(self):
        self.assertEqual(evaluate("var x = 5; x.Foo()").message, "x is not an object. got=INTEGER")
        self.assertEqual(evaluate("y.Foo()").message, "y is not defined")
        self.assertEqual(evaluate(self.COUNTER + "var c = new Counter(); c.Reset()").message,
                         "Reset is not a defined method")

    def test_descriptor_is_untouched_by_instances(self):
        interpreter = Interpreter(search_paths=[])
        evaluate(self.COUNTER + "var c = new Counter(); c.Bump(); c.Increment()", interpreter)
        descriptor = interpreter.globals.get("Counter")
        self.assertEqual(descriptor.env.get("count").value, 0)

    def test_hash_fields_are_not_shared(self):
        source = """
        class Table {
            var h = {1: 2, 3: 4}
            func Drop() { remove(h, 1) }
            func Size() { return len(h) }
        }
        var a = new Table()
        var b = new Table()
        a.Drop()
        """
        interpreter = Interpreter(search_paths=[])
        evaluate(source, interpreter)
        self.assertEqual(evaluate("a.Size()", interpreter).value, 1)
        self.assertEqual(evaluate("b.Size()", interpreter).value, 2)

    def test_array_elements_are_not_shared(self):
        source = """
        class Bag {
            var xs = [1, 2]
            func BumpAll() { for (x in xs) { x++ } }
            func First() { return first(xs) }
        }
        var a = new Bag()
        var b = new Bag()
        a.BumpAll()
        """
        interpreter = Interpreter(search_paths=[])
        evaluate(source, interpreter)
        self.assertEqual(evaluate("a.First()", interpreter).value, 2)
        self.assertEqual(evaluate("b.First()", interpreter).value, 1)
        self.assertEqual(interpreter.globals.get("Bag").env.get("xs").inspect(), "[1, 2]")


class TestClassLoading(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, name, source):
        (self.dir / name).write_text(source, encoding="utf-8")

    def test_loads_class_from_file(self):
        self.write("Greeter.ember", """
        class Greeter {
            var greeting = "hello"
            func Greet(name) { return greeting + " " + name }
        }
        """)
        interpreter = Interpreter(search_paths=[self.dir])
        result = evaluate('var g = new Greeter(); g.Greet("ada")', interpreter)
        self.assertEqual(result.value, "hello ada")
        self.assertIn("Greeter", interpreter.loaded_classes)

        # second instantiation is served from the cache
        again = evaluate("new Greeter()", interpreter)
        self.assertIsInstance(again, ClassInstance)

    def test_missing_class(self):
        interpreter = Interpreter(search_paths=[self.dir])
        self.assertEqual(evaluate("new Missing()", interpreter).message, "no such class: Missing")

    def test_syntax_error_in_class_file(self):
        self.write("Broken.ember", "class Broken { var = }")
        interpreter = Interpreter(search_paths=[self.dir])
        result = evaluate("new Broken()", interpreter)
        self.assertIsInstance(result, Error)
        self.assertTrue(result.message.startswith("could not load class Broken:"))

    def test_undecodable_class_file(self):
        (self.dir / "Bad.ember").write_bytes(b'class Bad { var s = "\xff\xfe" }')
        interpreter = Interpreter(search_paths=[self.dir])
        result = evaluate("new Bad()", interpreter)
        self.assertIsInstance(result, Error)
        self.assertTrue(result.message.startswith("could not load class Bad:"))
        self.assertNotIn("Bad", interpreter.loaded_classes)

    def test_circular_loading(self):
        self.write("A.ember", "class A { var b = new B() }")
        self.write("B.ember", "class B { var a = new A() }")
        interpreter = Interpreter(search_paths=[self.dir])
        self.assertEqual(evaluate("new A()", interpreter).message, "circular class loading: A")

    def test_loader_search_order(self):
        other = tempfile.TemporaryDirectory()
        self.addCleanup(other.cleanup)
        self.write("Thing.ember", "class Thing { }")
        loader = SourceLoader([other.name, self.dir])
        self.assertEqual(loader.find("Thing"), self.dir / "Thing.ember")
        self.assertIsNone(loader.find("../Thing"))


class TestREPL(unittest.TestCase):
    def test_execute_keeps_state(self):
        repl = EmberREPL(search_paths=[])
        repl.execute("var a = 2")
        self.assertEqual(repl.execute("a * 3").value, 6)

    def test_parser_errors_are_reported(self):
        repl = EmberREPL(search_paths=[])
        out = io.StringIO()
        with redirect_stdout(out):
            result = repl.execute("var = 1")
        self.assertIsNone(result)
        self.assertIn("parser errors:", out.getvalue())

    def test_needs_more_input(self):
        self.assertTrue(EmberREPL.needs_more_input("func f() {"))
        self.assertTrue(EmberREPL.needs_more_input("var xs = [1,"))
        self.assertFalse(EmberREPL.needs_more_input("func f() { 1 }"))

    def test_reset(self):
        repl = EmberREPL(search_paths=[])
        repl.execute("var a = 2")
        with redirect_stdout(io.StringIO()):
            repl.handle_command(".reset")
        self.assertIsInstance(repl.execute("a"), Error)


class TestCLI(unittest.TestCase):
    def run_main(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            with self.assertRaises(SystemExit) as cm:
                main(argv)
        return cm.exception.code, out.getvalue(), err.getvalue()

    def test_execute_flag(self):
        code, out, _ = self.run_main(["-e", "print(1 + 2)"])
        self.assertEqual(code, 0)
        self.assertEqual(out, "3\n")

    def test_final_value_is_printed(self):
        code, out, _ = self.run_main(["-e", "var a = 4; a * a"])
        self.assertEqual(code, 0)
        self.assertEqual(out, "16\n")

    def test_error_exit_status(self):
        code, out, _ = self.run_main(["-e", "1 / 0"])
        self.assertEqual(code, 1)
        self.assertEqual(out, "ERROR: division by zero\n")

    def test_run_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "Shape.ember").write_text("class Shape { var sides = 4 }", encoding="utf-8")
            script = Path(tmp) / "main.ember"
            script.write_text("var s = new Shape()\ns", encoding="utf-8")

            out = io.StringIO()
            with redirect_stdout(out):
                status = run_file(str(script))
        self.assertEqual(status, 0)
        self.assertEqual(out.getvalue(), "Shape{sides: 4}\n")

    def test_missing_file(self):
        err = io.StringIO()
        with redirect_stderr(err):
            status = run_file("/nonexistent/nothing.ember")
        self.assertEqual(status, 1)
        self.assertIn("Cannot read", err.getvalue())

    def test_demo_runs(self):
        code, out, _ = self.run_main(["--demo"])
        self.assertEqual(code, 0)
        self.assertIn("EMBER demo", out)
        self.assertTrue(out.endswith("rich\n"))

    def test_bundled_suite_loads(self):
        suite = load_test_suite()
        self.assertGreater(suite.countTestCases(), 50)


if __name__ == "__main__":
    unittest.main()
