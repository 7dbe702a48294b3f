import os
import tempfile
import unittest

from capture_pad.host import Host, HostError
from capture_pad.workspace import SCRATCH_BUFFER, Buffer, Layout, Window, Workspace


class TestBuffer(unittest.TestCase):

    def test_insert_single_line_moves_point(self):
        buffer = Buffer("b", "hello world")
        buffer.set_point(0, 5)
        self.assertTrue(buffer.insert(","))
        self.assertEqual(buffer.text, "hello, world")
        self.assertEqual(buffer.point, (0, 6))

    def test_insert_multiline_keeps_tail(self):
        buffer = Buffer("b", "ab")
        buffer.set_point(0, 1)
        buffer.insert("1\n2\n3")
        self.assertEqual(buffer.lines, ["a1", "2", "3b"])
        self.assertEqual(buffer.point, (2, 1))

    def test_insert_empty_is_noop(self):
        buffer = Buffer("b", "ab")
        self.assertFalse(buffer.insert(""))
        self.assertFalse(buffer.modified)

    def test_backspace_and_delete_join_lines(self):
        buffer = Buffer("b", "ab\ncd")
        buffer.set_point(1, 0)
        buffer.backspace()
        self.assertEqual(buffer.text, "abcd")
        self.assertEqual(buffer.point, (0, 2))
        buffer.set_point(0, 4)
        self.assertFalse(buffer.delete_forward())
        buffer.set_point(0, 0)
        self.assertFalse(buffer.backspace())

    def test_set_point_clamps(self):
        buffer = Buffer("b", "abc\nd")
        buffer.set_point(10, 10)
        self.assertEqual(buffer.point, (1, 1))

    def test_motion(self):
        buffer = Buffer("b", "abc\nd")
        buffer.move_end()
        self.assertEqual(buffer.point, (0, 3))
        buffer.move_right()
        self.assertEqual(buffer.point, (1, 0))
        buffer.move_up()
        self.assertEqual(buffer.point, (0, 0))
        self.assertFalse(buffer.move_left())

    def test_erase(self):
        buffer = Buffer("b", "x\ny")
        buffer.erase()
        self.assertEqual(buffer.text, "")
        self.assertEqual(buffer.point, (0, 0))


class TestMarkers(unittest.TestCase):

    def setUp(self):
        self.workspace = Workspace()
        self.buffer = self.workspace.current_buffer
        self.buffer.insert("hello world\nsecond")
        self.buffer.set_point(0, 6)
        self.marker = self.workspace.current_location()

    def position(self):
        return self.marker.row, self.marker.col

    def test_insert_before_marker_shifts_it(self):
        self.buffer.set_point(0, 0)
        self.buffer.insert(">> ")
        self.assertEqual(self.position(), (0, 9))

    def test_insert_at_or_after_marker_leaves_it(self):
        self.buffer.set_point(0, 6)
        self.buffer.insert("big ")
        self.buffer.set_point(1, 0)
        self.buffer.insert("x\ny")
        self.assertEqual(self.position(), (0, 6))

    def test_multiline_insert_before_marker(self):
        self.buffer.set_point(0, 2)
        self.buffer.insert("1\n2")
        self.assertEqual(self.buffer.lines[1][self.marker.col:], "world")
        self.assertEqual(self.position(), (1, 5))

    def test_deletions_pull_marker_back(self):
        self.buffer.set_point(0, 1)
        self.buffer.delete_forward()
        self.assertEqual(self.position(), (0, 5))
        self.buffer.set_point(0, 5)
        self.buffer.backspace()
        self.assertEqual(self.position(), (0, 4))
        self.assertEqual(self.buffer.lines[0][self.marker.col:], "world")

    def test_line_join_moves_marker_up(self):
        self.buffer.set_point(1, 3)
        second = self.workspace.current_location()
        self.buffer.set_point(1, 0)
        self.buffer.backspace()
        self.assertEqual((second.row, second.col), (0, 14))
        self.assertEqual(self.position(), (0, 6))

    def test_goto_uses_tracked_position(self):
        self.buffer.set_point(0, 0)
        self.buffer.insert("say ")
        self.workspace.goto_location(self.marker)
        self.workspace.insert_at_point("X")
        self.assertEqual(self.buffer.lines[0], "say hello Xworld")


class TestWorkspace(unittest.TestCase):

    def setUp(self):
        self.workspace = Workspace()

    def test_satisfies_host_protocol(self):
        self.assertIsInstance(self.workspace, Host)

    def test_starts_with_scratch(self):
        self.assertEqual(self.workspace.current_buffer.name, SCRATCH_BUFFER)
        self.assertEqual(self.workspace.save_layout(), Layout(((SCRATCH_BUFFER, 0),), 0))

    def test_show_surface_splits_and_focuses(self):
        self.workspace.create_surface("s")
        self.workspace.show_surface("s")
        self.assertEqual([w.buffer_name for w in self.workspace.windows], [SCRATCH_BUFFER, "s"])
        self.assertEqual(self.workspace.current_buffer.name, "s")
        self.workspace.show_surface("s")
        self.assertEqual(len(self.workspace.windows), 2)

    def test_collapse_keeps_selected_window(self):
        self.workspace.buffers["a"] = Buffer("a")
        self.workspace.windows.append(Window("a", 3))
        self.workspace.selected = 1
        self.workspace.collapse_layout()
        self.assertEqual(self.workspace.windows, [Window("a", 3)])
        self.assertEqual(self.workspace.selected, 0)

    def test_kill_buffer_removes_its_windows(self):
        self.workspace.create_surface("s")
        self.workspace.show_surface("s")
        self.workspace.kill_buffer("s")
        self.assertFalse(self.workspace.surface_exists("s"))
        self.assertEqual([w.buffer_name for w in self.workspace.windows], [SCRATCH_BUFFER])
        self.assertEqual(self.workspace.selected, 0)

    def test_kill_only_window_buffer_shows_fallback(self):
        self.workspace.create_surface("s")
        self.workspace.switch_to_buffer("s")
        self.workspace.kill_buffer("s")
        self.assertEqual(len(self.workspace.windows), 1)
        self.assertEqual(self.workspace.current_buffer.name, SCRATCH_BUFFER)

    def test_kill_scratch_recreates_it(self):
        self.workspace.current_buffer.insert("junk")
        self.workspace.kill_buffer(SCRATCH_BUFFER)
        self.assertEqual(self.workspace.current_buffer.name, SCRATCH_BUFFER)
        self.assertEqual(self.workspace.current_buffer.text, "")

    def test_unknown_surface_raises(self):
        with self.assertRaises(HostError):
            self.workspace.read_surface("missing")
        with self.assertRaises(HostError):
            self.workspace.destroy_surface("missing")
        with self.assertRaises(HostError):
            self.workspace.bind_keys("missing", {})

    def test_restore_layout_substitutes_killed_buffers(self):
        self.workspace.buffers["a"] = Buffer("a")
        layout = Layout(((SCRATCH_BUFFER, 0), ("a", 2)), 1)
        self.workspace.kill_buffer("a")
        self.workspace.restore_layout(layout)
        self.assertEqual([(w.buffer_name, w.scroll_top) for w in self.workspace.windows],
                         [(SCRATCH_BUFFER, 0), (SCRATCH_BUFFER, 0)])
        self.assertEqual(self.workspace.selected, 1)

    def test_location_round_trip(self):
        buffer = self.workspace.current_buffer
        buffer.insert("hello")
        buffer.set_point(0, 2)
        location = self.workspace.current_location()
        buffer.set_point(0, 5)
        self.workspace.goto_location(location)
        self.assertEqual(buffer.point, (0, 2))

    def test_goto_killed_location_raises(self):
        self.workspace.buffers["a"] = Buffer("a", "text")
        self.workspace.switch_to_buffer("a")
        location = self.workspace.current_location()
        self.workspace.kill_buffer("a")
        with self.assertRaises(HostError):
            self.workspace.goto_location(location)

    def test_confirm_without_handler_declines(self):
        self.assertFalse(self.workspace.confirm("Really?"))
        self.workspace.confirm_handler = lambda question: True
        self.assertTrue(self.workspace.confirm("Really?"))

    def test_other_window_cycles(self):
        self.workspace.create_surface("s")
        self.workspace.show_surface("s")
        self.workspace.other_window()
        self.assertEqual(self.workspace.selected, 0)
        self.workspace.other_window()
        self.assertEqual(self.workspace.selected, 1)


class TestWorkspaceFiles(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.workspace = Workspace()

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_open_and_save_file(self):
        path = os.path.join(self.tmpdir.name, "hello.py")
        with open(path, "w", encoding="utf-8") as f:
            f.write("print('Hello World')\nx = 1\n")

        buffer = self.workspace.open_file(path)
        self.assertEqual(buffer.lines, ["print('Hello World')", "x = 1"])
        self.assertIs(self.workspace.current_buffer, buffer)
        self.assertFalse(buffer.modified)

        buffer.set_point(1, 5)
        buffer.insert("0")
        self.workspace.save_file()
        with open(path, "r", encoding="utf-8") as f:
            self.assertEqual(f.read(), "print('Hello World')\nx = 10\n")
        self.assertFalse(buffer.modified)

    def test_open_missing_file_gives_empty_buffer(self):
        path = os.path.join(self.tmpdir.name, "new.txt")
        buffer = self.workspace.open_file(path)
        self.assertEqual(buffer.text, "")
        buffer.insert("fresh")
        self.workspace.save_file(buffer)
        with open(path, "r", encoding="utf-8") as f:
            self.assertEqual(f.read(), "fresh\n")

    def test_open_directory_raises(self):
        with self.assertRaises(HostError):
            self.workspace.open_file(self.tmpdir.name)

    def test_same_basename_gets_unique_name(self):
        first = self.workspace.open_file(os.path.join(self.tmpdir.name, "a.txt"))
        second = self.workspace.open_file(os.path.join(self.tmpdir.name, "sub", "a.txt"))
        self.assertEqual(first.name, "a.txt")
        self.assertEqual(second.name, "a.txt<2>")

    def test_save_scratch_raises(self):
        with self.assertRaises(HostError):
            self.workspace.save_file()


if __name__ == '__main__':
    unittest.main()
