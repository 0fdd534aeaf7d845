"""
Test suite for the Digital Garage: collection CRUD, items, ordering,
visibility, likes and public browse
"""
from rest_framework import status
from rest_framework.exceptions import ValidationError
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.collection.models import Collection, CollectionItem
from tarodan.collection import services
from tarodan.notifications.models import NotificationLog


class CollectionTestCase(MarketplaceTestCase):
    def setUp(self):
        super().setUp()
        self.owner = TestDataFactory.create_user(display_name='Garage Owner')
        TestDataFactory.create_membership(self.owner, 'premium')
        self.visitor = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def make_collection(self, name='JDM Legends', is_public=True):
        return services.create_collection(self.owner, {'name': name, 'is_public': is_public})


class CollectionCrudTests(CollectionTestCase):
    """Test create, update and delete"""

    def test_create_collection(self):
        response = self.client.post('/api/v1/collections/', {
            'name': 'Le Mans Winners', 'description': '1:43 endurance racers',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'le-mans-winners')
        self.assertTrue(response.data['is_public'])
        self.assertTrue(response.data['is_owner'])
        self.assertEqual(response.data['item_count'], 0)

    def test_free_member_cannot_create(self):
        self.client.authenticate_user(self.visitor)
        response = self.client.post('/api/v1/collections/', {'name': 'My Garage'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_duplicate_name_rejected(self):
        self.make_collection('Rally Cars')
        response = self.client.post('/api/v1/collections/', {'name': 'rally cars'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_name_without_letters_rejected(self):
        with self.assertRaises(ValidationError):
            services.make_slug('!!!')

    def test_rename_updates_slug(self):
        collection = self.make_collection()
        response = self.client.patch(f'/api/v1/collections/{collection.id}/', {'name': 'Tuner Icons'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['slug'], 'tuner-icons')

    def test_only_owner_can_edit_or_delete(self):
        collection = self.make_collection()
        self.client.authenticate_user(self.visitor)
        url = f'/api/v1/collections/{collection.id}/'
        self.assertEqual(self.client.patch(url, {'name': 'Mine now'}, format='json').status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_write_unauthorized(self):
        collection = self.make_collection()
        self.client.logout()
        response = self.client.delete(f'/api/v1/collections/{collection.id}/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_delete(self):
        collection = self.make_collection()
        response = self.client.delete(f'/api/v1/collections/{collection.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Collection.objects.filter(pk=collection.pk).exists())

    def test_list_own_collections_includes_private(self):
        self.make_collection('Public One')
        self.make_collection('Secret Stash', is_public=False)
        response = self.client.get('/api/v1/collections/')
        self.assertEqual(response.data['count'], 2)


class CollectionItemTests(CollectionTestCase):
    """Test adding, removing and reordering items"""

    def setUp(self):
        super().setUp()
        self.collection = self.make_collection()
        self.products = [TestDataFactory.create_product() for _ in range(3)]

    def test_add_items_appends(self):
        """Test items get increasing positions by default"""
        for product in self.products:
            response = self.client.post(
                f'/api/v1/collections/{self.collection.id}/items/', {'product_id': product.id}, format='json'
            )
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        positions = list(self.collection.items.values_list('sort_order', flat=True))
        self.assertEqual(positions, [1, 2, 3])

    def test_add_duplicate_rejected(self):
        services.add_item(self.collection.id, self.owner, self.products[0].id)
        response = self.client.post(
            f'/api/v1/collections/{self.collection.id}/items/', {'product_id': self.products[0].id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_others_cannot_add(self):
        self.client.authenticate_user(self.visitor)
        response = self.client.post(
            f'/api/v1/collections/{self.collection.id}/items/', {'product_id': self.products[0].id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_remove_item(self):
        item = services.add_item(self.collection.id, self.owner, self.products[0].id)
        response = self.client.delete(f'/api/v1/collections/{self.collection.id}/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(CollectionItem.objects.filter(pk=item.pk).exists())

    def test_reorder(self):
        """Test the new order is applied starting at 1"""
        items = [services.add_item(self.collection.id, self.owner, p.id) for p in self.products]
        new_order = [items[2].id, items[0].id, items[1].id]
        response = self.client.post(
            f'/api/v1/collections/{self.collection.id}/reorder/', {'item_ids': new_order}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([i['id'] for i in response.data], new_order)
        self.assertEqual([i['sort_order'] for i in response.data], [1, 2, 3])

    def test_reorder_requires_every_item(self):
        items = [services.add_item(self.collection.id, self.owner, p.id) for p in self.products]
        response = self.client.post(
            f'/api/v1/collections/{self.collection.id}/reorder/', {'item_ids': [items[0].id, items[1].id]}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CollectionVisibilityTests(CollectionTestCase):
    """Test private collections, views and likes"""

    def test_private_collection_hidden(self):
        collection = self.make_collection(is_public=False)
        self.client.authenticate_user(self.visitor)
        response = self.client.get(f'/api/v1/collections/{collection.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_views_counted_for_visitors_only(self):
        collection = self.make_collection()
        self.client.get(f'/api/v1/collections/{collection.id}/')
        self.client.logout()
        response = self.client.get(f'/api/v1/collections/{collection.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['view_count'], 1)
        self.assertFalse(response.data['is_owner'])

    def test_like_and_unlike(self):
        collection = self.make_collection()
        self.client.authenticate_user(self.visitor)
        url = f'/api/v1/collections/{collection.id}/like/'
        self.assertEqual(self.client.post(url).data, {'liked': True, 'like_count': 1})
        self.assertEqual(self.client.post(url).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(NotificationLog.objects.filter(user=self.owner, type='collection_liked').exists())

        response = self.client.get('/api/v1/collections/liked/')
        self.assertEqual(response.data['count'], 1)

        self.assertEqual(self.client.delete(url).data, {'liked': False, 'like_count': 0})

    def test_cannot_like_own_or_private(self):
        public = self.make_collection()
        self.assertEqual(
            self.client.post(f'/api/v1/collections/{public.id}/like/').status_code, status.HTTP_400_BAD_REQUEST
        )
        private = self.make_collection('Hidden Gems', is_public=False)
        self.client.authenticate_user(self.visitor)
        self.assertEqual(
            self.client.post(f'/api/v1/collections/{private.id}/like/').status_code, status.HTTP_403_FORBIDDEN
        )


class CollectionBrowseTests(CollectionTestCase):
    """Test public browse"""

    def setUp(self):
        super().setUp()
        self.big = self.make_collection('Porsche Archive')
        self.small = self.make_collection('Mini Madness')
        self.make_collection('Private Vault', is_public=False)
        for _ in range(2):
            services.add_item(self.big.id, self.owner, TestDataFactory.create_product().id)
        self.client.logout()

    def names(self, **params):
        response = self.client.get('/api/v1/collections/browse/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return [c['name'] for c in response.data['results']]

    def test_only_public_listed(self):
        self.assertCountEqual(self.names(), ['Porsche Archive', 'Mini Madness'])

    def test_ordering(self):
        self.assertEqual(self.names(ordering='items'), ['Porsche Archive', 'Mini Madness'])
        self.assertEqual(self.names(ordering='name'), ['Mini Madness', 'Porsche Archive'])

    def test_search_by_name_and_owner(self):
        self.assertEqual(self.names(search='porsche'), ['Porsche Archive'])
        self.assertCountEqual(self.names(search='garage owner'), ['Porsche Archive', 'Mini Madness'])

    def test_item_count_annotation(self):
        response = self.client.get('/api/v1/collections/browse/', {'ordering': 'items'})
        self.assertEqual(response.data['results'][0]['item_count'], 2)
