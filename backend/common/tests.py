import math

from django.test import SimpleTestCase

from common.utils import (
	MILE,
	KILOMETER,
	calculate_distance,
	calculate_bearing,
	convert_distance,
	bounding_box,
)
from common.validation import (
	InvalidDistance,
	InvalidLocation,
	make_coordinate,
	make_max_distance,
	make_radius,
)


SAN_FRANCISCO = (37.7749, -122.4194)
OAKLAND = (37.8044, -122.2712)


class DistanceTests(SimpleTestCase):
	def test_san_francisco_to_oakland(self):
		distance = calculate_distance(*SAN_FRANCISCO, *OAKLAND)
		self.assertGreater(distance, 6)
		self.assertLess(distance, 15)

	def test_distance_is_symmetric(self):
		forward = calculate_distance(*SAN_FRANCISCO, *OAKLAND)
		backward = calculate_distance(*OAKLAND, *SAN_FRANCISCO)
		self.assertAlmostEqual(forward, backward, places=9)

	def test_same_point_is_zero(self):
		self.assertEqual(calculate_distance(*SAN_FRANCISCO, *SAN_FRANCISCO), 0.0)

	def test_kilometres_use_larger_radius(self):
		miles = calculate_distance(*SAN_FRANCISCO, *OAKLAND, unit=MILE)
		km = calculate_distance(*SAN_FRANCISCO, *OAKLAND, unit=KILOMETER)
		self.assertAlmostEqual(km / miles, 6371.0 / 3959.0, places=6)

	def test_unknown_unit_rejected(self):
		with self.assertRaises(ValueError):
			calculate_distance(0, 0, 1, 1, unit="furlong")

	def test_antipodal_points_do_not_raise(self):
		distance = calculate_distance(0, 0, 0, 180)
		self.assertAlmostEqual(distance, math.pi * 3959.0, places=3)


class BearingTests(SimpleTestCase):
	def test_cardinal_directions(self):
		self.assertEqual(calculate_bearing(0, 0, 1, 0), "N")
		self.assertEqual(calculate_bearing(0, 0, 0, 1), "E")
		self.assertEqual(calculate_bearing(0, 0, -1, 0), "S")
		self.assertEqual(calculate_bearing(0, 0, 0, -1), "W")

	def test_intercardinal_directions(self):
		self.assertEqual(calculate_bearing(0, 0, 1, 1), "NE")
		self.assertEqual(calculate_bearing(0, 0, -1, 1), "SE")
		self.assertEqual(calculate_bearing(0, 0, -1, -1), "SW")
		self.assertEqual(calculate_bearing(0, 0, 1, -1), "NW")

	def test_slightly_west_of_north_is_north(self):
		self.assertEqual(calculate_bearing(0, 0, 1, -0.1), "N")


class ConversionTests(SimpleTestCase):
	def test_mile_km_round_trip(self):
		km = convert_distance(10, MILE, KILOMETER)
		self.assertAlmostEqual(convert_distance(km, KILOMETER, MILE), 10)

	def test_same_unit_is_identity(self):
		self.assertEqual(convert_distance(3.5, KILOMETER, KILOMETER), 3.5)

	def test_bounding_box_contains_circle_edge(self):
		lat, lon = SAN_FRANCISCO
		min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, 10, MILE)
		# A point just inside 10 miles due east must fall inside the box
		east_lon = lon + 0.18
		self.assertLess(calculate_distance(lat, lon, lat, east_lon), 10)
		self.assertTrue(min_lon <= east_lon <= max_lon)
		self.assertTrue(min_lat <= lat <= max_lat)

	def test_bounding_box_widens_near_pole(self):
		_, max_lat, min_lon, max_lon = bounding_box(89.99, 0, 10, MILE)
		self.assertEqual(max_lat, 90.0)
		self.assertEqual((min_lon, max_lon), (-180.0, 180.0))


class ValidationTests(SimpleTestCase):
	def test_valid_coordinate(self):
		coordinate = make_coordinate("37.5", -122)
		self.assertEqual((coordinate.latitude, coordinate.longitude), (37.5, -122.0))

	def test_boundaries_are_inclusive(self):
		make_coordinate(90, 180)
		make_coordinate(-90, -180)

	def test_out_of_range_coordinates(self):
		for lat, lng in [(90.1, 0), (-91, 0), (0, 180.5), (0, -181)]:
			with self.assertRaises(InvalidLocation):
				make_coordinate(lat, lng)

	def test_non_numeric_coordinates(self):
		for value in [None, "north", True, float("nan"), float("inf")]:
			with self.assertRaises(InvalidLocation):
				make_coordinate(value, 0)

	def test_max_distance_defaults_and_bounds(self):
		self.assertEqual(make_max_distance(None), 10.0)
		self.assertEqual(make_max_distance(10), 10.0)
		self.assertEqual(make_max_distance(0.5), 0.5)
		for value in [0, -1, 10.01, "far"]:
			with self.assertRaises(InvalidDistance):
				make_max_distance(value)

	def test_radius_accepts_zero_but_not_negative(self):
		self.assertEqual(make_radius(25), 25.0)
		self.assertEqual(make_radius(0), 0.0)
		for value in [-0.1, float("nan"), "wide"]:
			with self.assertRaises(InvalidDistance):
				make_radius(value)
