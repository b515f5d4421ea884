import math
import os
import sys
import unittest
from dataclasses import FrozenInstanceError

# Ensure src is in path
sys.path.append(os.path.join(os.path.dirname(__file__), "../src"))

from geometry import (
    DEFAULT_CONTAINER_HEIGHT,
    Size,
    Vec2,
    degrees_to_radians,
    from_ca_layer_space,
    from_ca_x,
    from_ca_y,
    radians_to_degrees,
    to_ca_layer_space,
    to_ca_x,
    to_ca_y,
)


class TestGeometry(unittest.TestCase):
    def test_vec2_immutability(self):
        v = Vec2(1, 2)
        with self.assertRaises(FrozenInstanceError):
            v.x = 3

    def test_to_ca_layer_space(self):
        # Center anchored and Y up
        self.assertEqual(to_ca_layer_space(Vec2(10, 20), Size(100, 50), 844), (60, 799))
        self.assertEqual(to_ca_layer_space(Vec2(0, 0), Size(390, 844), 844), (195, 422))

    def test_from_ca_layer_space(self):
        self.assertEqual(from_ca_layer_space(60, 799, Size(100, 50), 844), Vec2(10, 20))

    def test_default_container_height(self):
        self.assertEqual(DEFAULT_CONTAINER_HEIGHT, 844)
        expected = to_ca_layer_space(Vec2(0, 0), Size(10, 10), 844)
        self.assertEqual(to_ca_layer_space(Vec2(0, 0), Size(10, 10)), expected)
        self.assertEqual(to_ca_layer_space(Vec2(0, 0), Size(10, 10), 0), expected)
        self.assertEqual(from_ca_layer_space(5, 839, Size(10, 10), None), Vec2(0, 0))

    def test_round_trip_within_one_unit(self):
        for x, y, w, h, height in [
            (0.3, 0.7, 10.5, 20.25, 844),
            (-15.5, 100.4, 33, 17, 600),
            (123.456, 789.01, 0, 0, 1000),
            (1, 2, 3, 4, None),
        ]:
            size = Size(w, h)
            ca_x, ca_y = to_ca_layer_space(Vec2(x, y), size, height)
            self.assertIsInstance(ca_x, int)
            self.assertIsInstance(ca_y, int)
            back = from_ca_layer_space(ca_x, ca_y, size, height)
            self.assertLessEqual(abs(back.x - x), 1)
            self.assertLessEqual(abs(back.y - y), 1)

    def test_single_axis(self):
        self.assertEqual(to_ca_x(10, 100), 60)
        self.assertEqual(to_ca_y(20, 50, 844), 799)
        self.assertEqual(from_ca_x(60, 100), 10)
        self.assertEqual(from_ca_y(799, 50, 844), 20)

    def test_angles(self):
        self.assertAlmostEqual(degrees_to_radians(180), math.pi)
        self.assertAlmostEqual(radians_to_degrees(math.pi / 2), 90)
        self.assertAlmostEqual(radians_to_degrees(degrees_to_radians(33.3)), 33.3)


if __name__ == "__main__":
    unittest.main()
